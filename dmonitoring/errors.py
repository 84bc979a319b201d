# =============================================================================
# dmonitoring/errors.py
# Exceptions raised by the driver monitoring model pipeline.
# =============================================================================


class DMonitoringError(Exception):
    """Base class for all pipeline errors."""


class FrameDimensionError(DMonitoringError, ValueError):
    """The raw frame cannot supply a full model-sized crop."""


class EngineOutputError(DMonitoringError):
    """The inference engine did not produce a usable output vector."""


class OutputSchemaError(DMonitoringError):
    """The decode table does not fit the engine's declared output length."""
