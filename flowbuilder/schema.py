"""Schema model — passive definitions of a valid component configuration.

Three layers, all immutable:
  PropertySchema — constraints for a single config field
  ConfigSchema   — every field of one component type + the required names
  ComponentType  — catalog entry: identity, ports, and its ConfigSchema

ValidationError is the one record the validators emit. Its ``code`` is a
wire contract shared with the server validator, so local and server errors
can be merged field-by-field.

The ``from_dict`` constructors accept the JSON emitted by the component
catalog endpoint. They never raise on missing keys; a component with no
schema gets an empty ConfigSchema.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Property types known to the field validator. Anything else is carried
# verbatim and treated as unconstrained.
PROPERTY_TYPES: frozenset[str] = frozenset({
    "string", "int", "float", "bool", "enum", "ports", "object",
})

NUMERIC_TYPES: frozenset[str] = frozenset({"int", "float"})

# Error codes minted by the local validator. Server errors may carry codes
# outside this set (e.g. "pattern") and are passed through untouched.
ERROR_CODES: frozenset[str] = frozenset({"required", "min", "max", "enum", "type"})

PORT_DIRECTIONS: frozenset[str] = frozenset({"input", "output", "bidirectional"})


# ---------------------------------------------------------------------------
# Property / config schemas
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PropertySchema:
    """Constraints for a single configuration field.

    type:        One of PROPERTY_TYPES, or an unknown type name (no constraint).
    description: Human-readable description shown next to the field.
    default:     Default value offered when the node is created. Not
                 hashed (may be a list or object).
    minimum:     Inclusive lower bound (numeric types only).
    maximum:     Inclusive upper bound (numeric types only).
    enum:        Allowed values (enum type only). None = no constraint,
                 empty tuple = nothing is allowed.
    category:    "basic" fields are shown first; anything else is advanced.
    """

    type: str = "string"
    description: str = ""
    default: Any = field(default=None, hash=False)
    minimum: float | None = None
    maximum: float | None = None
    enum: tuple[str, ...] | None = None
    category: str | None = None

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES

    @property
    def is_basic(self) -> bool:
        return self.category in (None, "basic")

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> PropertySchema:
        raw_enum = raw.get("enum")
        prop_type = str(raw.get("type") or "string")
        if prop_type not in PROPERTY_TYPES:
            logger.debug("Unknown property type %r; field is unconstrained", prop_type)
        return cls(
            type=prop_type,
            description=raw.get("description") or "",
            default=raw.get("default"),
            minimum=raw.get("minimum"),
            maximum=raw.get("maximum"),
            enum=None if raw_enum is None else tuple(str(v) for v in raw_enum),
            category=raw.get("category"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.default is not None:
            out["default"] = self.default
        if self.minimum is not None:
            out["minimum"] = self.minimum
        if self.maximum is not None:
            out["maximum"] = self.maximum
        if self.enum is not None:
            out["enum"] = list(self.enum)
        if self.category is not None:
            out["category"] = self.category
        return out


@dataclass(frozen=True)
class ConfigSchema:
    """Complete configuration schema of one component type.

    properties: name → PropertySchema, in declaration order.
    required:   names that must hold a non-empty value. A name listed here
                but absent from ``properties`` is tolerated; it is checked
                for required-ness only.

    Hashing covers ``required`` only; two schemas that compare equal still
    hash equal.
    """

    properties: dict[str, PropertySchema] = field(default_factory=dict, hash=False)
    required: tuple[str, ...] = ()

    def is_required(self, name: str) -> bool:
        return name in self.required

    def orphan_required(self) -> list[str]:
        """Required names that have no property definition."""
        return [name for name in self.required if name not in self.properties]

    def defaults(self) -> dict[str, Any]:
        """Initial config for a freshly placed node (fields with a default only)."""
        return {
            name: prop.default
            for name, prop in self.properties.items()
            if prop.default is not None
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> ConfigSchema:
        if not raw:
            return cls()
        properties = {
            name: PropertySchema.from_dict(prop or {})
            for name, prop in (raw.get("properties") or {}).items()
        }
        # dict.fromkeys keeps declaration order while dropping repeats
        required = tuple(dict.fromkeys(raw.get("required") or []))
        return cls(properties=properties, required=required)

    def to_dict(self) -> dict[str, Any]:
        return {
            "properties": {name: p.to_dict() for name, p in self.properties.items()},
            "required": list(self.required),
        }


# ---------------------------------------------------------------------------
# Component catalog entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PortDefinition:
    """A named, directional attachment point used as a connection endpoint."""

    name: str
    direction: str = "input"
    required: bool = False
    description: str = ""

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> PortDefinition:
        name = raw.get("name") or raw.get("id") or ""
        direction = raw.get("direction") or "input"
        if direction not in PORT_DIRECTIONS:
            logger.warning("Port '%s' has unknown direction %r", name, direction)
        return cls(
            name=name,
            direction=direction,
            required=bool(raw.get("required", False)),
            description=raw.get("description") or "",
        )


@dataclass(frozen=True)
class ComponentType:
    """One catalog entry. Owned by the catalog; immutable for the session.

    id:       Component type identifier referenced by FlowNode.type
              (e.g. "udp-input").
    type:     Component category ("input", "processor", "output", "storage").
    schema:   ConfigSchema applied to every node of this type.
    ports:    Ordered port definitions.
    """

    id: str
    name: str = ""
    type: str = ""
    category: str = ""
    protocol: str = ""
    description: str = ""
    version: str = ""
    schema: ConfigSchema = field(default_factory=ConfigSchema)
    ports: tuple[PortDefinition, ...] = ()

    def ports_by_direction(self, direction: str) -> list[PortDefinition]:
        return [
            p for p in self.ports
            if p.direction == direction or p.direction == "bidirectional"
        ]

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> ComponentType:
        # The catalog endpoint has shipped the schema under both keys.
        raw_schema = raw.get("schema")
        if raw_schema is None:
            raw_schema = raw.get("configSchema")
        component_type = raw.get("type") or raw.get("category") or ""
        return cls(
            id=raw.get("id") or "",
            name=raw.get("name") or "",
            type=component_type,
            category=raw.get("category") or component_type,
            protocol=raw.get("protocol") or "",
            description=raw.get("description") or "",
            version=str(raw.get("version") or ""),
            schema=ConfigSchema.from_dict(raw_schema),
            ports=tuple(PortDefinition.from_dict(p) for p in raw.get("ports") or []),
        )


# ---------------------------------------------------------------------------
# Validation result record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationError:
    """A field-specific validation failure. Never persisted.

    code: "required" | "min" | "max" | "enum" | "type" for local errors;
          server-sourced errors keep whatever code the server sent.
    """

    field: str
    message: str
    code: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message, "code": self.code}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> ValidationError:
        return cls(
            field=str(raw.get("field") or ""),
            message=str(raw.get("message") or ""),
            code=str(raw.get("code") or ""),
        )
