"""Domain-specific errors for ebusbind."""


class EBusBindError(Exception):
    """Base error for ebusbind."""


class CatalogValidationError(EBusBindError):
    """Raised when a command collection file does not conform to schema or semantics."""


class CatalogLoadError(EBusBindError):
    """Raised when reading command collection sources fails."""


class ProjectionError(EBusBindError):
    """Raised when command metadata cannot be projected into capability types."""


class DeviceNotFoundError(EBusBindError):
    """Raised when a device or capability id is unknown to the service."""


class EncodeError(EBusBindError):
    """Raised when a request telegram cannot be built."""


class DecodeError(EBusBindError):
    """Raised when a received telegram cannot be interpreted."""


class TransportError(EBusBindError):
    """Base transport error."""


class TransportSendError(TransportError):
    """Raised when a telegram cannot be queued for sending."""


class ControllerError(TransportError):
    """Raised when the bus controller is in a fatal state."""


class UnknownCommandError(DecodeError):
    """Raised when a well-formed telegram matches no command in the catalog."""
