"""Utility functions and classes for makeaxe."""

from makeaxe.utils.exceptions import (
    AxeError,
    BundleIOError,
    CatalogError,
    ConfigurationError,
    MalformedMetadataError,
    ManagerError,
    ManagerInitializationError,
    ManagerShutdownError,
    MetadataNotFoundError,
)
