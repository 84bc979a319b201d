"""
server/websocket_server.py — Flask-SocketIO message bus
Carries driverState messages out to subscribers and receives
liveCalibration updates from them.

Started from main.py via WebSocketServer.start_background().
"""

import threading
import time
from typing import Optional, Sequence

import numpy as np
from flask import Flask, jsonify
from flask_socketio import SocketIO
from flask_cors import CORS

import config
from core.logger import get_logger

log = get_logger(__name__)


class WebSocketServer:
    """
    Lightweight Flask-SocketIO server used as the outbound bus.
    Each channel is emitted as a SocketIO event of the same name.

    Usage:
        server = WebSocketServer()
        server.start_background()               # non-blocking
        server.send("driverState", message)     # call from main loop
        calib = server.latest_calibration()
        server.stop()
    """

    def __init__(
        self,
        host: str = config.SERVER_HOST,
        port: int = config.SERVER_PORT,
        cors_origins: str = config.SERVER_CORS_ALLOWED_ORIGINS,
        async_mode: str = config.SERVER_ASYNC_MODE,
        calib_len: int = config.CALIB_LEN,
    ):
        self.host = host
        self.port = port
        self._running = False
        self._thread: threading.Thread | None = None

        # ── Flask + SocketIO setup ─────────────────────────────────────────
        self.app = Flask(__name__, static_folder=None)
        CORS(self.app, origins=cors_origins)

        self.socketio = SocketIO(
            self.app,
            cors_allowed_origins=cors_origins,
            async_mode=async_mode,
            logger=False,
            engineio_logger=False,
        )

        self._client_count: int = 0
        self._sent: int = 0

        # Written by the SocketIO handler thread, read by the frame loop
        self._calib_lock = threading.Lock()
        self._calib_len = calib_len
        self._calib: Optional[np.ndarray] = None

        self._register_routes()
        self._register_events()

    # ──────────────────────────────────────────────────────────────────────────
    # Flask routes
    # ──────────────────────────────────────────────────────────────────────────

    def _register_routes(self) -> None:
        @self.app.route("/health")
        def health():
            return jsonify({
                "status": "ok" if self._running else "idle",
                "clients": self._client_count,
                "server": "Driver Monitoring Bus",
                "channel": config.PUBLISH_CHANNEL,
                "sent": self._sent,
                "port": self.port,
            })

    # ──────────────────────────────────────────────────────────────────────────
    # SocketIO events
    # ──────────────────────────────────────────────────────────────────────────

    def _register_events(self) -> None:
        @self.socketio.on("connect")
        def on_connect():
            self._client_count += 1
            log.info(f"Subscriber connected. Clients: {self._client_count}")

        @self.socketio.on("disconnect")
        def on_disconnect(*_):
            self._client_count = max(0, self._client_count - 1)
            log.info(f"Subscriber disconnected. Clients: {self._client_count}")

        @self.socketio.on(config.CALIBRATION_EVENT)
        def on_calibration(data):
            try:
                self.set_calibration(data["rpyCalib"])
            except (KeyError, TypeError, ValueError) as exc:
                log.warning(f"Ignoring malformed {config.CALIBRATION_EVENT}: {exc}")

    # ──────────────────────────────────────────────────────────────────────────
    # Calibration
    # ──────────────────────────────────────────────────────────────────────────

    def set_calibration(self, rpy_calib: Sequence[float]) -> None:
        calib = np.asarray(rpy_calib, dtype=np.float32).reshape(-1)
        if calib.size != self._calib_len:
            raise ValueError(f"rpyCalib must have {self._calib_len} values, got {calib.size}")
        with self._calib_lock:
            self._calib = calib
        log.debug(f"Calibration updated: {calib.tolist()}")

    def latest_calibration(self, default: Optional[Sequence[float]] = None) -> np.ndarray:
        """Most recent calibration received, else default, else zeros."""
        with self._calib_lock:
            if self._calib is not None:
                return self._calib.copy()
        if default is not None:
            return np.asarray(default, dtype=np.float32)
        return np.zeros(self._calib_len, dtype=np.float32)

    # ──────────────────────────────────────────────────────────────────────────
    # Data emission
    # ──────────────────────────────────────────────────────────────────────────

    def send(self, channel: str, message: dict) -> None:
        """
        Broadcast a message to every subscriber of channel.
        Fire-and-forget: no acknowledgement, nothing is queued for
        subscribers that connect later.
        """
        self.socketio.emit(channel, message)
        self._sent += 1

    # ──────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    def start_background(self) -> None:
        """
        Start the SocketIO server in a background daemon thread.
        Returns immediately; call send() from the main loop.
        """
        if self._running:
            log.warning("Server already running.")
            return

        self._running = True
        self._thread = threading.Thread(
            target=self._run_server,
            daemon=True,
            name="dmonitoring-ws-server",
        )
        self._thread.start()
        time.sleep(0.5)   # give the server time to bind the port
        log.info(
            f"Bus started at http://{self.host}:{self.port}  "
            f"(health: http://localhost:{self.port}/health)"
        )

    def _run_server(self) -> None:
        """Internal: run Flask-SocketIO (blocking, called in daemon thread)."""
        self.socketio.run(
            self.app,
            host=self.host,
            port=self.port,
            use_reloader=False,
            log_output=False,
            allow_unsafe_werkzeug=True,
        )

    def stop(self) -> None:
        """Signal the server to stop (best-effort for daemon thread)."""
        self._running = False
        log.info("Bus stopped.")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def client_count(self) -> int:
        return self._client_count

    @property
    def messages_sent(self) -> int:
        return self._sent
