"""Graph normalizer — the single gate for every externally sourced Flow.

Server responses and AI generator output both pass through normalize()
before anything else touches them. The backend may return ``null`` or omit
``nodes`` / ``connections`` for a new flow; the generator only returns the
graph, with no identity fields at all. normalize() reconciles both into a
canonical Flow:

  - null / absent nodes and connections   → []
  - absent identity fields                → Flow defaults ("" / 0 / "not_deployed")
  - every other field                     → passed through unchanged
                                            (a null name or type stays None)

Idempotent: a Flow is returned as-is, and normalize(flow.to_dict()) == flow.

Structural defects (duplicate ids, dangling endpoints) are producer bugs and
raise FlowStructureError. With ``drop_dangling=True`` dangling connections are
dropped with a warning instead.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from flowbuilder.flow import Flow, FlowStructureError

logger = logging.getLogger(__name__)


def _load_raw(raw: Any) -> dict[str, Any]:
    """Accept a mapping or a JSON document; return a shallow dict copy."""
    if raw is None:
        return {}
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FlowStructureError([f"Invalid UTF-8: {e}"]) from e
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise FlowStructureError([f"Invalid JSON: {e}"]) from e
    if not isinstance(raw, Mapping):
        raise FlowStructureError(
            [f"flow must be a JSON object, got {type(raw).__name__}"]
        )
    return dict(raw)


def _drop_dangling(data: dict[str, Any]) -> None:
    """Remove connections whose endpoints are not nodes of the same flow."""
    node_ids = {
        n.get("id") for n in data["nodes"] if isinstance(n, Mapping) and n.get("id")
    }
    kept: list[Any] = []
    for conn in data["connections"]:
        if not isinstance(conn, Mapping):
            kept.append(conn)
            continue
        src, tgt = conn.get("source_node_id"), conn.get("target_node_id")
        if src in node_ids and tgt in node_ids:
            kept.append(conn)
        else:
            logger.warning(
                "Dropping dangling connection '%s' (%s → %s) from flow '%s'",
                conn.get("id", ""), src, tgt, data.get("id", ""),
            )
    data["connections"] = kept


def normalize(raw: Flow | Mapping[str, Any] | str | bytes | None, *, drop_dangling: bool = False) -> Flow:
    """Coerce an externally sourced flow payload into a canonical Flow.

    Parameters
    ----------
    raw:            Server response body, generator output, or an existing Flow.
    drop_dangling:  Drop connections whose endpoints do not resolve instead of
                    raising FlowStructureError.
    """
    if isinstance(raw, Flow):
        return raw

    data = _load_raw(raw)
    if data.get("nodes") is None:
        data["nodes"] = []
    if data.get("connections") is None:
        data["connections"] = []

    if drop_dangling:
        _drop_dangling(data)

    flow = Flow.from_dict(data)
    logger.debug(
        "Normalized flow '%s': %d node(s), %d connection(s)",
        flow.id, len(flow.nodes), len(flow.connections),
    )
    return flow
