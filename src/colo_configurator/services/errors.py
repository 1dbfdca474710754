"""Exception definitions for the configurator."""


class ConfiguratorError(Exception):
    """Base exception for configurator errors."""

    pass


class NotFoundError(ConfiguratorError):
    """Raised when a quote, order, cart row or product id does not resolve."""

    pass


class PreconditionError(ConfiguratorError):
    """Raised when an operation is refused because the entity is in the wrong state."""

    def __init__(self, message: str, incomplete_items: list[str] | None = None):
        super().__init__(message)
        self.incomplete_items = list(incomplete_items or [])


class StorageError(ConfiguratorError):
    """Raised by storage backends when a read or write fails."""

    pass


class ValidationFailedError(ConfiguratorError):
    """Raised when a submitted configuration fails form-layer validation."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = list(errors or [])
