"""Relaxe catalog access.

The publish workflow needs only two things from the catalog: counting
records with a given plugin name and version, and inserting a new
record. :class:`Catalog` describes that interface; :class:`MongoCatalog`
implements it on top of the MongoDB collection Relaxe reads from.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable

import structlog
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from makeaxe.core.config_manager import DatabaseSettings
from makeaxe.utils.exceptions import CatalogError

logger = structlog.get_logger(__name__)


@runtime_checkable
class Catalog(Protocol):
    """Record store for published axes."""

    def count_by_name_and_version(self, plugin_name: str, version: str) -> int:
        """Count published records for a plugin name and version.

        Raises:
            CatalogError: If the catalog cannot be queried
        """
        ...

    def insert(self, record: Dict[str, Any]) -> None:
        """Insert a published record.

        Raises:
            CatalogError: If the record cannot be stored
        """
        ...


class MongoCatalog:
    """Catalog backed by a MongoDB collection.

    Attributes:
        settings: Database connection settings
    """

    def __init__(self, settings: DatabaseSettings, client: Optional[MongoClient] = None) -> None:
        """Initialize the catalog.

        Args:
            settings: Database connection settings
            client: Existing client to use instead of opening a new one
        """
        self.settings = settings
        self._client = client
        self._collection: Optional[Collection] = None

    def connect(self) -> None:
        """Open the connection and check the server is reachable.

        Raises:
            CatalogError: If the server cannot be reached
        """
        try:
            if self._client is None:
                self._client = MongoClient(self.settings.connection_string)
            self._client.admin.command("ping")
            self._collection = self._client[self.settings.name][self.settings.collection]
        except PyMongoError as e:
            self.close()
            raise CatalogError(f"Cannot connect to Relaxe database: {e}", operation="connect") from e

        logger.info(
            "Connected to Relaxe catalog",
            collection=f"{self.settings.name}.{self.settings.collection}",
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._collection = None

    def __enter__(self) -> MongoCatalog:
        self.connect()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def collection(self) -> Collection:
        if self._collection is None:
            raise CatalogError("Catalog is not connected. Call connect() first.")
        return self._collection

    def count_by_name_and_version(self, plugin_name: str, version: str) -> int:
        try:
            return self.collection.count_documents({"pluginName": plugin_name, "version": version})
        except PyMongoError as e:
            raise CatalogError(f"Relaxe database error: {e}", operation="count") from e

    def insert(self, record: Dict[str, Any]) -> None:
        try:
            # insert_one adds an _id to the document it is given
            self.collection.insert_one(dict(record))
        except PyMongoError as e:
            raise CatalogError(f"Relaxe database error: {e}", operation="insert") from e
