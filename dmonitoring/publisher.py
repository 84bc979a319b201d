# =============================================================================
# dmonitoring/publisher.py
#
# ResultPublisher — DriverMonitoringResult → "driverState" message → bus.
#
# Message schema (keys must match downstream consumers):
#   frameId, modelExecutionTime, dspExecutionTime,
#   poorVision, wheelOnRight,
#   driverDataLH, driverDataRH   (see fill_driver_data)
#   rawPredictions               only present when raw export is enabled
#
# The bus is anything exposing send(channel, message). Sending is
# fire-and-forget: no acknowledgement is awaited and transport errors are
# the bus's concern.
# =============================================================================

from typing import Optional, Protocol, Union
import numpy as np

from config import PUBLISH_CHANNEL, SEND_RAW_PRED
from dmonitoring.data_structures import DriverStateResult, DriverMonitoringResult
from core.logger import get_logger

log = get_logger(__name__)


class MessageBus(Protocol):
    def send(self, channel: str, message: dict) -> None: ...


def fill_driver_data(ds: DriverStateResult) -> dict:
    """Serialize one seating-side block."""
    return {
        "orientation":     list(ds.orientation),
        "orientationStd":  list(ds.orientation_std),
        "position":        list(ds.position),
        "positionStd":     list(ds.position_std),
        "faceProb":        ds.face_prob,
        "leftEyeProb":     ds.left_eye_prob,
        "rightEyeProb":    ds.right_eye_prob,
        "leftBlinkProb":   ds.left_blink_prob,
        "rightBlinkProb":  ds.right_blink_prob,
        "sunglassesProb":  ds.sunglasses_prob,
        "occludedProb":    ds.occluded_prob,
        "readyProb":       list(ds.ready_prob),
        "notReadyProb":    list(ds.not_ready_prob),
    }


def build_driver_state_message(
    frame_id: int,
    result: DriverMonitoringResult,
    execution_time: float,
    raw_pred: Optional[bytes] = None,
) -> dict:
    """
    Assemble the outbound message. rawPredictions is added only when
    raw_pred is not None.
    """
    msg = {
        "frameId":            int(frame_id),
        "modelExecutionTime": float(execution_time),
        "dspExecutionTime":   float(result.dsp_execution_time),
        "poorVision":         result.poor_vision,
        "wheelOnRight":       result.wheel_on_right,
        "driverDataLH":       fill_driver_data(result.driver_state_lhd),
        "driverDataRH":       fill_driver_data(result.driver_state_rhd),
    }
    if raw_pred is not None:
        msg["rawPredictions"] = raw_pred
    return msg


class ResultPublisher:
    """
    Usage:
        pub = ResultPublisher(bus)
        pub.publish(frame_id, result, raw_pred=model.raw_predictions())
    """

    def __init__(
        self,
        bus: MessageBus,
        send_raw_pred: bool = SEND_RAW_PRED,
        channel: str = PUBLISH_CHANNEL,
    ):
        self._bus           = bus
        self._send_raw_pred = bool(send_raw_pred)
        self._channel       = channel
        self._sent          = 0
        log.info(f"ResultPublisher → '{channel}' (raw predictions: {self._send_raw_pred})")

    @property
    def send_raw_pred(self) -> bool:
        return self._send_raw_pred

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def messages_sent(self) -> int:
        return self._sent

    def publish(
        self,
        frame_id: int,
        result: DriverMonitoringResult,
        execution_time: Optional[float] = None,
        raw_pred: Union[bytes, np.ndarray, None] = None,
    ) -> dict:
        """
        Build and send one message.

        Args:
            frame_id:       Camera frame identifier
            result:         Decoded pipeline output
            execution_time: Total model execution time in seconds
                            (defaults to result.model_execution_time)
            raw_pred:       Raw output vector or its bytes; ignored unless
                            raw export is enabled

        Returns:
            The message that was sent.
        """
        if execution_time is None:
            execution_time = result.model_execution_time

        payload = None
        if self._send_raw_pred:
            if raw_pred is None:
                log.warning(f"Raw export enabled but frame {frame_id} carried no predictions")
            elif isinstance(raw_pred, np.ndarray):
                payload = np.ascontiguousarray(raw_pred, dtype=np.float32).tobytes()
            else:
                payload = bytes(raw_pred)

        msg = build_driver_state_message(frame_id, result, execution_time, payload)
        self._bus.send(self._channel, msg)
        self._sent += 1
        return msg
