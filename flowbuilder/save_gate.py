"""Save/deploy gate — decides whether a Flow may leave the editor.

"Valid for save" = structural invariants hold AND validate_config() returns
no errors for every node whose component type the catalog knows. An interim
Flow may be invalid while it is being edited; only this boundary refuses it.

validate_flow()  — full local validation, returns a FlowValidationReport.
                   Structural defects raise FlowStructureError; config
                   problems are reported as data.
SaveGate         — one-shot authorization of the exact payload that passed
                   validate_flow(). The persistence layer calls check()
                   immediately before transmitting, so a Flow edited after
                   validation can never be sent unvalidated.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from flowbuilder.config import DEFAULT_POLICY, GraphPolicy
from flowbuilder.errors import FlowbuilderError
from flowbuilder.flow import Flow, FlowStructureError, check_structure
from flowbuilder.schema import ComponentType, ValidationError
from flowbuilder.validator import validate_config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Report models
# ---------------------------------------------------------------------------


@dataclass
class ValidationIssue:
    """A flow-level problem, in the same shape the server's flow validator uses.

    type:     "unknown_component" | "invalid_config" (local); the server may
              also report orphaned_port, disconnected_node, cycle_detected, ...
    severity: "error" blocks save/deploy, "warning" does not.
    """

    type: str
    severity: str
    component_name: str
    message: str
    node_id: str = ""
    port_name: str | None = None
    suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": self.type,
            "severity": self.severity,
            "component_name": self.component_name,
            "node_id": self.node_id,
            "message": self.message,
            "suggestions": list(self.suggestions),
        }
        if self.port_name is not None:
            out["port_name"] = self.port_name
        return out


@dataclass
class FlowValidationReport:
    """Result of validate_flow().

    node_errors:   node id → config errors, only for nodes that have any.
    issues:        flow-level issues (one invalid_config per failing node,
                   unknown_component when the policy asks for it).
    skipped_nodes: ids of nodes whose type is not in the catalog and were
                   therefore not config-validated.
    """

    node_errors: dict[str, list[ValidationError]] = field(default_factory=dict)
    issues: list[ValidationIssue] = field(default_factory=list)
    skipped_nodes: list[str] = field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def ok(self) -> bool:
        """True when nothing blocks save/deploy."""
        return not self.node_errors and not self.errors

    @property
    def status(self) -> str:
        """Overall status: "valid", "warnings" or "errors" (server vocabulary)."""
        if not self.ok:
            return "errors"
        if self.warnings:
            return "warnings"
        return "valid"

    @property
    def error_count(self) -> int:
        return sum(len(errs) for errs in self.node_errors.values())

    def errors_for(self, node_id: str) -> list[ValidationError]:
        return list(self.node_errors.get(node_id, []))

    def to_dict(self) -> dict[str, Any]:
        return {
            "validation_status": self.status,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
            "node_errors": {
                node_id: [e.to_dict() for e in errs]
                for node_id, errs in self.node_errors.items()
            },
            "skipped_nodes": list(self.skipped_nodes),
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_flow(
    flow: Flow,
    catalog: Mapping[str, ComponentType],
    policy: GraphPolicy = DEFAULT_POLICY,
) -> FlowValidationReport:
    """Run full local validation of ``flow`` against ``catalog``.

    Raises FlowStructureError for structural defects (including self-loops
    when the policy rejects them). Everything else is reported.
    """
    defects = check_structure(flow.nodes, flow.connections, policy)
    if defects:
        raise FlowStructureError(defects)

    report = FlowValidationReport()
    for node in flow.nodes:
        label = node.name or node.id
        component = catalog.get(node.type)

        if component is None:
            if policy.unknown_components == "error":
                report.issues.append(ValidationIssue(
                    type="unknown_component",
                    severity="error",
                    component_name=label,
                    node_id=node.id,
                    message=f"Component type '{node.type}' is not in the component catalog",
                    suggestions=["Replace the node with a component type from the catalog"],
                ))
            else:
                logger.debug(
                    "Skipping config validation for node '%s': unknown type '%s'",
                    node.id, node.type,
                )
                report.skipped_nodes.append(node.id)
            continue

        errors = validate_config(node.config, component.schema)
        if errors:
            report.node_errors[node.id] = errors
            report.issues.append(ValidationIssue(
                type="invalid_config",
                severity="error",
                component_name=label,
                node_id=node.id,
                message="; ".join(f"{e.field}: {e.message}" for e in errors),
                suggestions=[f"Fix '{e.field}' ({e.code})" for e in errors],
            ))

    logger.debug(
        "Validated flow '%s': status=%s, %d config error(s), %d skipped node(s)",
        flow.id, report.status, report.error_count, len(report.skipped_nodes),
    )
    return report


def is_valid_for_save(
    flow: Flow,
    catalog: Mapping[str, ComponentType],
    policy: GraphPolicy = DEFAULT_POLICY,
) -> bool:
    """True when ``flow`` is structurally sound and every known node's config is valid."""
    try:
        return validate_flow(flow, catalog, policy).ok
    except FlowStructureError:
        return False


# ---------------------------------------------------------------------------
# Save gate
# ---------------------------------------------------------------------------


class FlowNotReadyError(FlowbuilderError):
    """Raised by SaveGate.authorize() when a Flow is not valid for save.

    report: the FlowValidationReport explaining why.
    """

    def __init__(self, flow_id: str, report: FlowValidationReport) -> None:
        problems = [i.message for i in report.errors]
        super().__init__(
            f"Flow '{flow_id}' is not valid for save: " + "; ".join(problems)
        )
        self.flow_id = flow_id
        self.report = report


def _payload_hash(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class SaveGate:
    """Refuses to let an unvalidated Flow payload reach the persistence API.

    Lifecycle (one gate per editing session):
      1. ``authorize(flow)`` runs validate_flow(). A Flow that is not valid
         for save raises FlowNotReadyError; otherwise the compact JSON
         payload is returned and its SHA-256 recorded.
      2. The persistence layer calls ``check(payload)`` right before the
         request. A payload that differs from the authorized one raises
         PermissionError.
      3. ``revoke()`` after a successful save, so the next save must be
         re-validated.
    """

    def __init__(
        self,
        catalog: Mapping[str, ComponentType],
        policy: GraphPolicy = DEFAULT_POLICY,
    ) -> None:
        self._catalog = catalog
        self._policy = policy
        self._authorized_hash: str | None = None
        self.last_report: FlowValidationReport | None = None

    def authorize(self, flow: Flow) -> str:
        """Validate ``flow`` and return the exact JSON payload to transmit."""
        self._authorized_hash = None
        report = validate_flow(flow, self._catalog, self._policy)
        self.last_report = report
        if not report.ok:
            logger.info(
                "Save refused for flow '%s': %d blocking issue(s)",
                flow.id, len(report.errors),
            )
            raise FlowNotReadyError(flow.id, report)

        payload = flow.to_json()
        self._authorized_hash = _payload_hash(payload)
        return payload

    def check(self, payload: str) -> None:
        """Assert ``payload`` is the one authorize() returned.

        Raises PermissionError when nothing was authorized or the payload
        changed since authorization.
        """
        if self._authorized_hash is None:
            raise PermissionError(
                "ValidationRequired: the flow has not been validated for save. "
                "Call authorize(flow) and transmit the payload it returns."
            )
        actual = _payload_hash(payload)
        if actual != self._authorized_hash:
            raise PermissionError(
                "HashMismatch: the flow payload changed since it was validated. "
                f"(authorized={self._authorized_hash[:16]}…, received={actual[:16]}…)"
            )

    def revoke(self) -> None:
        """Revoke authorization after a successful save."""
        self._authorized_hash = None

    @property
    def authorized_hash(self) -> str | None:
        return self._authorized_hash
