class DCAEngineException(Exception):
    """
    Base exception for the DCA engine.
    All other exception types are subclasses of this exception type.
    """


class ConfigurationError(DCAEngineException, ValueError):
    """
    Strategy parameters are invalid. The strategy must not start
    until the configuration is fixed.
    """


class ScheduleValidationError(DCAEngineException, ValueError):
    """
    A computed schedule violates a risk limit or is structurally unusable
    (no levels, non-positive base size).
    """
