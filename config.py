# =============================================================================
# config.py — Central Configuration for the Driver Monitoring Model daemon
# All tunable parameters live here. Never hardcode values in modules.
# =============================================================================

import os

# ── Paths ─────────────────────────────────────────────────────────────────────
BASE_DIR    = os.path.dirname(os.path.abspath(__file__))
MODELS_DIR  = os.path.join(BASE_DIR, "models")
LOGS_DIR    = os.path.join(BASE_DIR, "logs")
PARAMS_DIR  = os.environ.get("DMONITORING_PARAMS_DIR",
                             os.path.join(BASE_DIR, "params"))
os.makedirs(LOGS_DIR, exist_ok=True)

# ── Driver Camera ─────────────────────────────────────────────────────────────
CAMERA_INDEX        = 0
CAMERA_WIDTH        = 1928       # Driver camera sensor resolution
CAMERA_HEIGHT       = 1208
CAMERA_FPS          = 20

# ── Model Geometry ────────────────────────────────────────────────────────────
# Luma crop fed to the network. Bottom MODEL_HEIGHT rows, horizontally centered.
MODEL_WIDTH         = 1440
MODEL_HEIGHT        = 960

# Extrinsic calibration (roll, pitch, yaw) forwarded verbatim to the engine
CALIB_LEN           = 3

# Flat output vector length produced by one forward pass
OUTPUT_SIZE         = 84

# ── Output Decoding ───────────────────────────────────────────────────────────
# Normalized regression output → physical units (radians / meters)
REG_SCALE           = 0.25

# Two mirrored seating-side blocks followed by two shared scalars
DRIVER_BLOCK_SIZE   = 41
LHD_BLOCK_OFFSET    = 0
RHD_BLOCK_OFFSET    = 41
POOR_VISION_IDX     = 82
WHEEL_ON_RIGHT_IDX  = 83

# ── Inference Engine ──────────────────────────────────────────────────────────
# "onnx"  → portable ONNX Runtime backend
# "torch" → accelerated (quantized TorchScript) backend
ENGINE_BACKEND          = os.environ.get("DMONITORING_BACKEND", "onnx")
ENGINE_USE_ACCELERATOR  = True
ONNX_MODEL_PATH         = os.path.join(MODELS_DIR, "dmonitoring_model.onnx")
TORCH_MODEL_PATH        = os.path.join(MODELS_DIR, "dmonitoring_model_q.pt")

# ── Persistent Params ─────────────────────────────────────────────────────────
PARAM_IS_RHD        = "IsRHD"

# ── Publishing ────────────────────────────────────────────────────────────────
PUBLISH_CHANNEL     = "driverState"
CALIBRATION_EVENT   = "liveCalibration"
# Attach the raw output vector to every message when the variable is set
SEND_RAW_PRED       = os.environ.get("SEND_RAW_PRED") is not None

# ── WebSocket Bus ─────────────────────────────────────────────────────────────
SERVER_HOST                 = "0.0.0.0"
SERVER_PORT                 = 5000
SERVER_CORS_ALLOWED_ORIGINS = "*"
SERVER_ASYNC_MODE           = "eventlet"

# ── Debug ─────────────────────────────────────────────────────────────────────
DEBUG_MODE          = False
LOG_EVERY_N_FRAMES  = 100        # INFO-level timing summary cadence
