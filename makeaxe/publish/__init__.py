"""Publishing axes to a Relaxe catalog.

Modules:
    catalog: Catalog interface and its MongoDB implementation
    workflow: Duplicate guard, identity assignment and atomic rename
"""

from __future__ import annotations

from makeaxe.publish.catalog import Catalog, MongoCatalog
from makeaxe.publish.workflow import (
    PublishOutcome,
    Publisher,
    PublishStatus,
    RenameOutcome,
    RenameStatus,
    commit_rename,
)

__all__ = [
    "Catalog",
    "MongoCatalog",
    "PublishOutcome",
    "Publisher",
    "PublishStatus",
    "RenameOutcome",
    "RenameStatus",
    "commit_rename",
]
