"""
main.py — Driver monitoring model daemon
Runs the driver monitoring network on every driver-camera frame and
publishes the decoded driver state on the "driverState" channel.

Pipeline per frame:
  1. Frame source .read_frame()          → RawFrame (I420 luma)
  2. WebSocketServer.latest_calibration() → rpyCalib
  3. DMonitoringModel.eval_frame()        → DriverMonitoringResult
  4. ResultPublisher.publish()            → driverState message on the bus

Usage:
  python main.py                              # default camera, ONNX backend
  python main.py --video drive.hevc
  python main.py --yuv drive.yuv --width 1928 --height 1208
  python main.py --backend torch --accelerator
  SEND_RAW_PRED=1 python main.py              # attach raw output vector
"""

import argparse
import logging
import time

import config
from camera.capture import CameraCapture, YUVFileReader
from core.logger import get_logger, set_console_level
from core.params import Params
from dmonitoring.dmonitoring_model import DMonitoringModel
from dmonitoring.engine import ENGINE_BACKENDS
from dmonitoring.publisher import ResultPublisher
from server.websocket_server import WebSocketServer

log = get_logger("dmonitoringd")


# ──────────────────────────────────────────────────────────────────────────────
# Argument parsing
# ──────────────────────────────────────────────────────────────────────────────

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Driver monitoring model daemon")
    src = p.add_mutually_exclusive_group()
    src.add_argument("--camera",  type=int, default=config.CAMERA_INDEX,
                     help=f"Camera device index (default: {config.CAMERA_INDEX}).")
    src.add_argument("--video",   default=None,
                     help="Read frames from a video file instead of a camera.")
    src.add_argument("--yuv",     default=None,
                     help="Read raw I420 frames from a .yuv file.")
    p.add_argument("--width",     type=int, default=config.CAMERA_WIDTH,
                   help="Frame width for --yuv.")
    p.add_argument("--height",    type=int, default=config.CAMERA_HEIGHT,
                   help="Frame height for --yuv.")
    p.add_argument("--backend",   choices=sorted(ENGINE_BACKENDS), default=config.ENGINE_BACKEND,
                   help="Inference engine backend.")
    p.add_argument("--model",     default=None,
                   help="Model file (default depends on backend).")
    p.add_argument("--accelerator", action=argparse.BooleanOptionalAction,
                   default=config.ENGINE_USE_ACCELERATOR,
                   help="Use GPU / accelerator execution when available.")
    p.add_argument("--send-raw-pred", action="store_true", default=config.SEND_RAW_PRED,
                   help="Attach the raw output vector to every message.")
    p.add_argument("--calib",     type=float, nargs=config.CALIB_LEN, default=None,
                   metavar=("ROLL", "PITCH", "YAW"),
                   help="Calibration used until a liveCalibration update arrives.")
    p.add_argument("--params-dir", default=config.PARAMS_DIR,
                   help="Persistent params directory (IsRHD).")
    p.add_argument("--max-frames", type=int, default=0,
                   help="Stop after N frames (0 = run until the source ends).")
    p.add_argument("--dump-input", default=None,
                   help="Write the first preprocessed tensor to this file (float32).")
    p.add_argument("--no-server", action="store_true",
                   help="Do not bind the WebSocket port (messages are still built).")
    p.add_argument("--debug",     action="store_true",
                   help="Log per-frame timings to the console.")
    return p.parse_args(argv)


def open_source(args):
    if args.yuv is not None:
        return YUVFileReader(args.yuv, args.width, args.height)
    if args.video is not None:
        return CameraCapture(args.video)
    return CameraCapture(args.camera)


# ──────────────────────────────────────────────────────────────────────────────
# Main loop
# ──────────────────────────────────────────────────────────────────────────────

def run(args) -> int:
    """Process frames until the source ends. Returns the number of frames published."""
    if args.debug:
        config.DEBUG_MODE = True
        set_console_level(logging.DEBUG)

    model = DMonitoringModel.from_config(
        params=Params(args.params_dir),
        backend=args.backend,
        model_path=args.model,
        use_accelerator=args.accelerator,
    )

    server = WebSocketServer()
    if not args.no_server:
        server.start_background()
    publisher = ResultPublisher(server, send_raw_pred=args.send_raw_pred)

    frame_id = 0
    last = time.perf_counter()
    source = open_source(args)
    try:
        with source:
            if not source.is_open:
                log.error("FATAL: frame source unavailable.")
                return 0

            while not args.max_frames or frame_id < args.max_frames:
                ok, frame = source.read_frame()
                if not ok:
                    break

                calib = server.latest_calibration(default=args.calib)

                t1 = time.perf_counter()
                result = model.eval_frame(frame, calib)
                t2 = time.perf_counter()

                raw_pred = model.raw_predictions() if publisher.send_raw_pred else None
                publisher.publish(frame_id, result, t2 - t1, raw_pred)

                if frame_id == 0 and args.dump_input:
                    model.dump_input(args.dump_input)

                log.debug(
                    f"dmonitoring process: {(t2 - t1) * 1000:.2f}ms, "
                    f"from last {(t2 - last) * 1000:.2f}ms, frame_id {frame_id}"
                )
                if frame_id % config.LOG_EVERY_N_FRAMES == 0:
                    log.info(
                        f"Frame {frame_id} | model={result.model_execution_time * 1000:.1f}ms | "
                        f"dsp={result.dsp_execution_time * 1000:.1f}ms | "
                        f"poorVision={result.poor_vision:.2f} | "
                        f"wheelOnRight={result.wheel_on_right:.2f}"
                    )
                last = t2
                frame_id += 1
    except KeyboardInterrupt:
        log.info("KeyboardInterrupt — shutting down.")
    finally:
        model.close()
        server.stop()
        log.info(f"Published {frame_id} frames.")

    return frame_id


def main(argv=None) -> None:
    run(parse_args(argv))


if __name__ == "__main__":
    main()
