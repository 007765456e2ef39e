"""
Error types raised by the availability engine
"""


class ConfigurationError(ValueError):
    """Invalid engine configuration; the engine refuses to initialize"""


class StoreError(Exception):
    """Transient failure talking to the schedule store"""


class LoadError(StoreError):
    """Fetching schedule entries failed (distinct from an empty result)"""


class WriteError(StoreError):
    """Persisting a schedule entry failed"""


class SessionStateError(RuntimeError):
    """Coordinator operation not allowed in the current session state"""
