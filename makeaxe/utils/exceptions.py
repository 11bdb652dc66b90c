from __future__ import annotations

from typing import Any, Optional


class AxeError(Exception):
    """Base exception for all makeaxe errors."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            **kwargs: Additional error information
        """
        self.message = message
        self.details = kwargs.pop("details", None) or {}
        self.details.update({k: v for k, v in kwargs.items() if v is not None})
        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.message}"


class ManagerError(AxeError):
    """Base exception for manager-related errors."""

    def __init__(self, message: str, manager_name: Optional[str] = None, **kwargs: Any) -> None:
        """
        Initialize manager error.

        Args:
            message: Error message
            manager_name: Name of the affected manager
            **kwargs: Additional error information
        """
        super().__init__(message, manager_name=manager_name, **kwargs)
        self.manager_name = manager_name

    def __str__(self) -> str:
        """String representation."""
        if self.manager_name:
            return f"{self.message} (Manager: {self.manager_name})"
        return super().__str__()


class ManagerInitializationError(ManagerError):
    """Exception raised when a manager fails to initialize."""

    pass


class ManagerShutdownError(ManagerError):
    """Exception raised when a manager fails to shut down cleanly."""

    pass


class ConfigurationError(AxeError):
    """Exception raised for configuration-related errors."""

    def __init__(
            self, message: str, *, config_key: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a ConfigurationError.

        Args:
            message: A descriptive error message.
            config_key: The configuration key that caused the error.
            **kwargs: Additional error information.
        """
        super().__init__(message, config_key=config_key, **kwargs)
        self.config_key = config_key


class MetadataNotFoundError(AxeError):
    """Raised when a bundle's metadata file is missing or unreadable."""

    def __init__(self, message: str, *, path: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, path=path, **kwargs)
        self.path = path


class MalformedMetadataError(AxeError):
    """Raised when metadata does not parse or fails validation."""

    def __init__(self, message: str, *, path: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, path=path, **kwargs)
        self.path = path


class BundleIOError(AxeError):
    """Raised when reading, writing, renaming or deleting a bundle file fails."""

    def __init__(self, message: str, *, path: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, path=path, **kwargs)
        self.path = path


class CatalogError(AxeError):
    """Exception raised when the catalog cannot be queried or written."""

    def __init__(
            self, message: str, *, operation: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a CatalogError.

        Args:
            message: A descriptive error message.
            operation: The catalog operation that failed (connect, count, insert).
            **kwargs: Additional error information.
        """
        super().__init__(message, operation=operation, **kwargs)
        self.operation = operation
