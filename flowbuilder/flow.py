"""Flow graph model — Flow, FlowNode, FlowConnection and their invariants.

A Flow is the persisted/transmitted unit: an ordered list of component nodes
plus the directed connections between their ports. Wire format (persistence
API, generator output after normalization):

  {
    "id": "flow-1",
    "name": "Telemetry ingest",
    "description": "...",
    "version": 3,
    "runtime_state": "not_deployed",
    "nodes": [
      {
        "id": "udp-input-1",
        "type": "udp-input",
        "name": "UDP Input",
        "position": {"x": 100, "y": 100},
        "config": {"port": 5000, "host": "0.0.0.0"}
      }
    ],
    "connections": [
      {
        "id": "conn_udp-input-1_log-output-1_out",
        "source_node_id": "udp-input-1",
        "source_port": "out",
        "target_node_id": "log-output-1",
        "target_port": "in"
      }
    ],
    "created_at": "...", "updated_at": "...", "last_modified": "..."
  }

Structural invariants (checked at construction and at every mutation):
  - node ids and connection ids are non-empty and unique within the Flow
  - connection ports are non-empty
  - both endpoints of every connection resolve to a node in the same Flow
  - nodes / connections are lists, never None
  - a node's position and config are objects when present
  - self-loops only when the GraphPolicy allows them (mutation/save only)

A violation is a producer defect and raises FlowStructureError. It never
enters the soft ValidationError stream.

Unknown wire keys are kept in ``extra`` and written back by ``to_dict`` so a
Flow round-trips without losing fields this model does not know about.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from flowbuilder.config import DEFAULT_POLICY, GraphPolicy
from flowbuilder.errors import FlowbuilderError

logger = logging.getLogger(__name__)

# Lifecycle tag driven by deploy/start/stop outside this package:
# not_deployed → deployed_stopped → running → deployed_stopped | error
RUNTIME_STATES: frozenset[str] = frozenset({
    "not_deployed", "deployed_stopped", "running", "error",
})

_NODE_KEYS: frozenset[str] = frozenset({"id", "type", "name", "position", "config"})
_CONNECTION_KEYS: frozenset[str] = frozenset({
    "id", "source_node_id", "source_port", "target_node_id", "target_port",
})
_FLOW_OPTIONAL_KEYS: tuple[str, ...] = (
    "description", "created_at", "updated_at", "last_modified",
    "deployed_at", "started_at", "stopped_at", "created_by",
)
_FLOW_KEYS: frozenset[str] = frozenset(
    {"id", "name", "version", "runtime_state", "nodes", "connections",
     *_FLOW_OPTIONAL_KEYS}
)


class FlowStructureError(FlowbuilderError):
    """Raised when a Flow would violate a structural invariant.

    errors: list of human-readable defects, one per problem found.
    """

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


# ---------------------------------------------------------------------------
# Nodes and connections
# ---------------------------------------------------------------------------


@dataclass
class Position:
    """Canvas coordinates of a node, in pixels."""

    x: float = 0
    y: float = 0

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> Position:
        if not raw:
            return cls()
        return cls(x=raw.get("x", 0), y=raw.get("y", 0))

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass
class FlowNode:
    """One component instance placed in a Flow.

    id:       Unique node ID within the Flow.
    type:     ComponentType.id in the catalog (e.g. "udp-input"). A wire null
              is kept as None.
    name:     Display name (None when the wire sent null).
    position: Canvas position.
    config:   Field name → value, validated against the component's ConfigSchema.
    extra:    Wire keys this model does not interpret (passed through).
    """

    id: str
    type: str | None
    name: str | None = ""
    position: Position = field(default_factory=Position)
    config: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> FlowNode:
        return cls(
            id=raw.get("id") or "",
            type=raw.get("type", ""),
            name=raw.get("name", ""),
            position=Position.from_dict(raw.get("position")),
            config=copy.deepcopy(dict(raw.get("config") or {})),
            extra={k: copy.deepcopy(v) for k, v in raw.items() if k not in _NODE_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "position": self.position.to_dict(),
            "config": copy.deepcopy(self.config),
            **copy.deepcopy(self.extra),
        }


@dataclass
class FlowConnection:
    """A directed edge from an output port of one node to an input port of another."""

    id: str
    source_node_id: str
    source_port: str
    target_node_id: str
    target_port: str
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_self_loop(self) -> bool:
        return self.source_node_id == self.target_node_id

    def touches(self, node_id: str) -> bool:
        return node_id in (self.source_node_id, self.target_node_id)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> FlowConnection:
        return cls(
            id=raw.get("id") or "",
            source_node_id=raw.get("source_node_id") or "",
            source_port=raw.get("source_port") or "",
            target_node_id=raw.get("target_node_id") or "",
            target_port=raw.get("target_port") or "",
            extra={
                k: copy.deepcopy(v) for k, v in raw.items() if k not in _CONNECTION_KEYS
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_node_id": self.source_node_id,
            "source_port": self.source_port,
            "target_node_id": self.target_node_id,
            "target_port": self.target_port,
            **copy.deepcopy(self.extra),
        }


# ---------------------------------------------------------------------------
# Structural checks
# ---------------------------------------------------------------------------


def _connection_errors(
    conn: FlowConnection,
    node_ids: set[str],
    policy: GraphPolicy,
) -> list[str]:
    """Defects of a single connection relative to the node ids in its Flow."""
    label = conn.id or "<no id>"
    errors: list[str] = []
    if not conn.source_port:
        errors.append(f"Connection '{label}': source_port is required")
    if not conn.target_port:
        errors.append(f"Connection '{label}': target_port is required")
    if conn.source_node_id not in node_ids:
        errors.append(
            f"Connection '{label}': source node '{conn.source_node_id}' not found in flow"
        )
    if conn.target_node_id not in node_ids:
        errors.append(
            f"Connection '{label}': target node '{conn.target_node_id}' not found in flow"
        )
    if conn.is_self_loop and not policy.allows_self_loops:
        errors.append(
            f"Connection '{label}': self-loop on node '{conn.source_node_id}' is not allowed"
        )
    return errors


def check_structure(
    nodes: list[FlowNode] | None,
    connections: list[FlowConnection] | None,
    policy: GraphPolicy = DEFAULT_POLICY,
) -> list[str]:
    """Return every structural defect of a node/connection set (empty = sound).

    Checks performed:
    - nodes and connections are lists (None is a producer defect)
    - every node and connection has a non-empty, unique id
    - every connection has non-empty ports and resolving endpoints
    - self-loops are rejected when ``policy.self_loops == "reject"``
    """
    errors: list[str] = []
    if nodes is None:
        errors.append("nodes must be a list, got None")
    if connections is None:
        errors.append("connections must be a list, got None")
    if errors:
        return errors

    node_ids: set[str] = set()
    for i, node in enumerate(nodes):
        if not node.id:
            errors.append(f"nodes[{i}]: id is required")
        elif node.id in node_ids:
            errors.append(f"Duplicate node id '{node.id}'")
        else:
            node_ids.add(node.id)

    connection_ids: set[str] = set()
    for i, conn in enumerate(connections):
        if not conn.id:
            errors.append(f"connections[{i}]: id is required")
        elif conn.id in connection_ids:
            errors.append(f"Duplicate connection id '{conn.id}'")
        else:
            connection_ids.add(conn.id)
        errors.extend(_connection_errors(conn, node_ids, policy))

    return errors


# ---------------------------------------------------------------------------
# Flow
# ---------------------------------------------------------------------------


@dataclass
class Flow:
    """A persisted directed graph of component nodes and their connections.

    The editor holds a working copy; the server copy is authoritative.
    ``version`` and ``runtime_state`` are carried opaquely: this package never
    bumps the version or moves the runtime state.
    """

    id: str = ""
    name: str | None = ""
    version: int = 0
    runtime_state: str = "not_deployed"
    nodes: list[FlowNode] = field(default_factory=list)
    connections: list[FlowConnection] = field(default_factory=list)
    description: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    last_modified: str | None = None
    deployed_at: str | None = None
    started_at: str | None = None
    stopped_at: str | None = None
    created_by: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        errors = check_structure(self.nodes, self.connections)
        if errors:
            raise FlowStructureError(errors)
        if self.runtime_state not in RUNTIME_STATES:
            logger.warning(
                "Flow '%s' has unknown runtime_state %r; carrying it unchanged",
                self.id, self.runtime_state,
            )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def node_ids(self) -> set[str]:
        """Return the set of all node IDs currently in the flow."""
        return {n.id for n in self.nodes}

    def get_node(self, node_id: str) -> FlowNode | None:
        """Find a node by ID. Returns None if not found."""
        return next((n for n in self.nodes if n.id == node_id), None)

    def get_connection(self, connection_id: str) -> FlowConnection | None:
        return next((c for c in self.connections if c.id == connection_id), None)

    def connections_for(self, node_id: str) -> list[FlowConnection]:
        """Connections with ``node_id`` at either end, in flow order."""
        return [c for c in self.connections if c.touches(node_id)]

    def _require_node(self, node_id: str) -> FlowNode:
        node = self.get_node(node_id)
        if node is None:
            raise KeyError(f"node '{node_id}' not found in flow '{self.id}'")
        return node

    # ------------------------------------------------------------------
    # Mutation boundary: every method keeps the invariants or raises
    # without touching the flow.
    # ------------------------------------------------------------------

    def add_node(self, node: FlowNode) -> FlowNode:
        if not node.id:
            raise FlowStructureError(["node id is required"])
        if self.get_node(node.id) is not None:
            raise FlowStructureError([f"Duplicate node id '{node.id}'"])
        self.nodes.append(node)
        return node

    def remove_node(self, node_id: str) -> list[FlowConnection]:
        """Remove a node and every connection touching it.

        Returns the removed connections so the caller can offer undo.
        """
        node = self._require_node(node_id)
        removed = self.connections_for(node_id)
        self.connections = [c for c in self.connections if not c.touches(node_id)]
        self.nodes.remove(node)
        return removed

    def update_node_config(self, node_id: str, config: Mapping[str, Any]) -> FlowNode:
        """Replace a node's whole config (a copy of ``config`` is stored)."""
        node = self._require_node(node_id)
        node.config = copy.deepcopy(dict(config))
        return node

    def set_config_value(self, node_id: str, field_name: str, value: Any) -> FlowNode:
        node = self._require_node(node_id)
        node.config[field_name] = copy.deepcopy(value)
        return node

    def move_node(self, node_id: str, x: float, y: float) -> FlowNode:
        node = self._require_node(node_id)
        node.position = Position(x=x, y=y)
        return node

    def rename_node(self, node_id: str, name: str) -> FlowNode:
        node = self._require_node(node_id)
        node.name = name
        return node

    def add_connection(
        self,
        connection: FlowConnection,
        policy: GraphPolicy = DEFAULT_POLICY,
    ) -> FlowConnection:
        errors: list[str] = []
        if not connection.id:
            errors.append("connection id is required")
        elif self.get_connection(connection.id) is not None:
            errors.append(f"Duplicate connection id '{connection.id}'")
        errors.extend(_connection_errors(connection, self.node_ids(), policy))
        if errors:
            raise FlowStructureError(errors)
        self.connections.append(connection)
        return connection

    def remove_connection(self, connection_id: str) -> FlowConnection:
        connection = self.get_connection(connection_id)
        if connection is None:
            raise KeyError(f"connection '{connection_id}' not found in flow '{self.id}'")
        self.connections.remove(connection)
        return connection

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persistence API JSON shape."""
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "runtime_state": self.runtime_state,
            "nodes": [n.to_dict() for n in self.nodes],
            "connections": [c.to_dict() for c in self.connections],
        }
        for key in _FLOW_OPTIONAL_KEYS:
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        out.update(copy.deepcopy(self.extra))
        return out

    def to_json(self) -> str:
        """Serialize to a compact JSON string (no whitespace)."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Flow:
        """Build a Flow from canonical wire JSON.

        ``nodes``/``connections`` must already be lists; coercing null or
        absent collections is normalizer.normalize()'s job.
        """
        raw_nodes = raw.get("nodes")
        raw_connections = raw.get("connections")
        return cls(
            id=raw.get("id") or "",
            name=raw.get("name", ""),
            version=raw.get("version") or 0,
            runtime_state=raw.get("runtime_state") or "not_deployed",
            nodes=(
                None if raw_nodes is None
                else [_as_node(n, i) for i, n in enumerate(raw_nodes)]
            ),
            connections=(
                None if raw_connections is None
                else [_as_connection(c) for c in raw_connections]
            ),
            **{key: raw.get(key) for key in _FLOW_OPTIONAL_KEYS},
            extra={k: copy.deepcopy(v) for k, v in raw.items() if k not in _FLOW_KEYS},
        )

    def copy(self) -> Flow:
        return copy.deepcopy(self)

    def content_hash(self) -> str:
        """SHA-256 of the user-editable content (name, description, graph).

        Identity, version, runtime state and timestamps are excluded so a
        server round-trip that only bumps ``version`` does not look dirty.
        """
        content = {
            "name": self.name,
            "description": self.description,
            "nodes": [n.to_dict() for n in self.nodes],
            "connections": [c.to_dict() for c in self.connections],
        }
        payload = json.dumps(content, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _as_node(raw: FlowNode | Mapping[str, Any], index: int = 0) -> FlowNode:
    if isinstance(raw, FlowNode):
        return copy.deepcopy(raw)
    if not isinstance(raw, Mapping):
        raise FlowStructureError([f"node must be an object, got {type(raw).__name__}"])
    errors = [
        f"nodes[{index}]: {key} must be an object, got {type(raw[key]).__name__}"
        for key in ("position", "config")
        if raw.get(key) is not None and not isinstance(raw[key], Mapping)
    ]
    if errors:
        raise FlowStructureError(errors)
    return FlowNode.from_dict(raw)


def _as_connection(raw: FlowConnection | Mapping[str, Any]) -> FlowConnection:
    if isinstance(raw, FlowConnection):
        return copy.deepcopy(raw)
    if not isinstance(raw, Mapping):
        raise FlowStructureError(
            [f"connection must be an object, got {type(raw).__name__}"]
        )
    return FlowConnection.from_dict(raw)


def is_dirty(working: Flow, saved: Flow | None) -> bool:
    """True when the working copy has edits the server copy does not have."""
    if saved is None:
        return True
    return working.content_hash() != saved.content_hash()

