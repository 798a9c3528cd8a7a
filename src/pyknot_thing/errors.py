"""Exceptions for pyknot-thing: storage I/O, validation, unknown sensor ids and partial writes."""


class PyKnotThingError(Exception):
    """Base exception for pyknot-thing."""

    pass


class StorageIOError(PyKnotThingError):
    """Raised when a configuration source cannot be opened, closed or written."""

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        group: str | None = None,
        key: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.source = source
        self.group = group
        self.key = key
        self.cause = cause
        super().__init__(message)


class ValidationError(PyKnotThingError):
    """Raised when a field is missing, malformed, out of bounds or fails a cross-field rule."""

    def __init__(self, field: str, message: str | None = None, *, group: str | None = None) -> None:
        self.field = field
        self.group = group
        if message is None:
            message = f"Invalid {field}" if group is None else f"Invalid {field} in [{group}]"
        super().__init__(message)


class NotFoundError(PyKnotThingError):
    """Raised when a sensor id is not known to the registry or to the configuration source."""

    def __init__(self, sensor_id: int, message: str | None = None) -> None:
        self.sensor_id = sensor_id
        super().__init__(message or f"Unknown sensor id: {sensor_id}")


class PartialFailureError(PyKnotThingError):
    """Raised after a multi-field operation where some field writes failed and the rest were attempted."""

    def __init__(self, failures: dict[str, BaseException], message: str | None = None) -> None:
        self.failures = dict(failures)
        super().__init__(message or f"Failed to write: {', '.join(self.failures)}")

    @property
    def fields(self) -> list[str]:
        return list(self.failures)
