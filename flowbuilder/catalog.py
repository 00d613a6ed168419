"""ComponentCatalog — read-only component type lookup, injected per session.

The catalog is loaded once (from the catalog endpoint's JSON or a local
snapshot file) and handed to the validators. It is never a process-wide
singleton, so tests and sessions can each supply their own.

A node whose ``type`` has no catalog entry is "not yet known": config
validation for it is skipped unless the GraphPolicy says otherwise.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

from flowbuilder.errors import FlowbuilderError
from flowbuilder.schema import ComponentType, ConfigSchema

logger = logging.getLogger(__name__)


class CatalogError(FlowbuilderError):
    """Raised when a catalog snapshot cannot be parsed."""


class ComponentCatalog(Mapping[str, ComponentType]):
    """Immutable mapping of component type id → ComponentType."""

    def __init__(self, component_types: Iterable[ComponentType] = ()) -> None:
        index: dict[str, ComponentType] = {}
        for component in component_types:
            if not component.id:
                logger.warning("[ComponentCatalog] Skipping component type with no id")
                continue
            if component.id in index:
                logger.warning(
                    "[ComponentCatalog] Duplicate component type '%s' — keeping the first",
                    component.id,
                )
                continue
            index[component.id] = component
        self._index = index

    # ------------------------------------------------------------------
    # Mapping protocol
    # ------------------------------------------------------------------

    def __getitem__(self, type_id: str) -> ComponentType:
        return self._index[type_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"ComponentCatalog({sorted(self._index)!r})"

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def schema_for(self, type_id: str) -> ConfigSchema | None:
        """Return the ConfigSchema for a component type, or None if unknown."""
        component = self._index.get(type_id)
        return component.schema if component is not None else None

    def by_category(self, category: str) -> list[ComponentType]:
        return [c for c in self._index.values() if c.category == category]

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_list(cls, raw: Iterable[Mapping[str, Any]]) -> ComponentCatalog:
        """Build from the catalog endpoint's JSON array."""
        return cls(ComponentType.from_dict(item) for item in raw)

    @classmethod
    def from_snapshot(cls, path: Path | str) -> ComponentCatalog:
        """Load a catalog snapshot file.

        A missing file yields an empty catalog (every node type is then
        "not yet known"). A file that is not a JSON array raises CatalogError.
        """
        path = Path(path)
        if not path.exists():
            logger.info("[ComponentCatalog] Snapshot not found at %s — catalog is empty", path)
            return cls()

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise CatalogError(f"Catalog snapshot {path} is not valid JSON: {e}") from e

        # Accept both a bare array and {"components": [...]}.
        if isinstance(raw, Mapping):
            raw = raw.get("components") or raw.get("types") or []
        if not isinstance(raw, list):
            raise CatalogError(
                f"Catalog snapshot {path} must hold a JSON array, got {type(raw).__name__}"
            )

        catalog = cls.from_list(item for item in raw if isinstance(item, Mapping))
        logger.info(
            "[ComponentCatalog] Loaded %d component types from %s", len(catalog), path
        )
        return catalog
