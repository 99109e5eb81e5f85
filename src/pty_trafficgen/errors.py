"""Exceptions raised by a traffic run."""


class TrafficGenError(Exception):
    """Base class for run failures surfaced to the caller."""


class ConfigError(TrafficGenError, ValueError):
    pass


class ConnectError(TrafficGenError):
    pass


class WriteError(TrafficGenError):
    pass


class ReadError(TrafficGenError):
    pass
