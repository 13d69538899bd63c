"""Process-lifetime cache of resolved extraction-service schema ids."""

from __future__ import annotations

import threading

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class SchemaIdCache(BaseModel):
    """Schema name -> schema id, filled on first lookup and never invalidated.

    One instance is owned by each `DocuPipeClient`. Pass a shared instance to reuse lookups
    across clients.
    """

    model_config = ConfigDict(extra="forbid")

    entries: dict[str, str] = Field(default_factory=dict)
    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    def get(self, name: str) -> str | None:
        """Return the cached id for a schema name."""
        with self._lock:
            return self.entries.get(name)

    def put(self, name: str, schema_id: str) -> None:
        """Remember the id resolved for a schema name."""
        with self._lock:
            self.entries[name] = schema_id

    def clear(self) -> None:
        """Forget every resolved id."""
        with self._lock:
            self.entries.clear()
