"""Store backends for schemaforge."""

from schemaforge.backends.base import BaseStore, SelectQuery
from schemaforge.backends.memory import MemoryStore

__all__ = ["BaseStore", "SelectQuery", "MemoryStore"]
