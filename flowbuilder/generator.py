"""AI flow generator — request/response contract and the apply gate.

The generator itself (prompt → graph synthesis) lives outside this package.
What lives here is everything on our side of the boundary:

  GenerateFlowRequest   — request body: trimmed prompt + optional existing flow
  GenerateFlowResponse  — response body: the create_flow tool input
                          ({nodes, connections}) + the server's
                          ValidationResult (validation_status valid|warnings|errors)
  prepare_candidate()   — parse the response, pass the graph through the
                          normalizer, run full local validation
  apply_candidate()     — merge a ready candidate into the working flow

A candidate whose server status is "errors", or that fails local validation,
is shown to the user as-is. It is never auto-corrected, and apply_candidate()
refuses it.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from flowbuilder.config import DEFAULT_POLICY, GraphPolicy, Settings
from flowbuilder.errors import GeneratorError
from flowbuilder.flow import Flow, FlowStructureError
from flowbuilder.normalizer import normalize
from flowbuilder.save_gate import FlowValidationReport, validate_flow
from flowbuilder.schema import ComponentType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


class GeneratedPosition(BaseModel):
    x: float = 0
    y: float = 0


class GeneratedNode(BaseModel):
    """One node as emitted by the create_flow tool."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Unique node identifier.")
    type: str = Field(..., description="Component type ID from the catalog.")
    name: str = Field("", description="Human-readable node name.")
    position: GeneratedPosition = Field(default_factory=GeneratedPosition)
    config: dict[str, Any] = Field(
        default_factory=dict, description="Component-specific configuration."
    )


class GeneratedConnection(BaseModel):
    """One connection as emitted by the create_flow tool."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Connection identifier (conn_<source>_<target>_<port>).")
    source_node_id: str
    source_port: str
    target_node_id: str
    target_port: str


class CreateFlowToolInput(BaseModel):
    """The create_flow tool input. Either collection may be null on the wire."""

    nodes: list[GeneratedNode] | None = None
    connections: list[GeneratedConnection] | None = None

    def to_flow_dict(self) -> dict[str, Any]:
        return {
            "nodes": None if self.nodes is None else [n.model_dump() for n in self.nodes],
            "connections": (
                None if self.connections is None
                else [c.model_dump() for c in self.connections]
            ),
        }


class ValidationIssueModel(BaseModel):
    """A flow-level issue reported by the server's flow validator."""

    type: str = Field(
        ...,
        description=(
            "orphaned_port | disconnected_node | unknown_component | "
            "cycle_detected | missing_config | graph_build_error | ..."
        ),
    )
    severity: Literal["error", "warning"] = "error"
    component_name: str = ""
    port_name: str | None = None
    message: str = ""
    suggestions: list[str] = Field(default_factory=list)


class ValidationResultModel(BaseModel):
    validation_status: Literal["valid", "warnings", "errors"]
    errors: list[ValidationIssueModel] = Field(default_factory=list)
    warnings: list[ValidationIssueModel] = Field(default_factory=list)

    @property
    def unknown_components(self) -> list[str]:
        """Component names the server flagged as not in its registry."""
        return [i.component_name for i in self.errors if i.type == "unknown_component"]


class GenerateFlowRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(..., description="Natural-language description of the desired flow.")
    existing_flow: dict[str, Any] | None = Field(
        None,
        alias="existingFlow",
        description="Current flow to modify; omitted for a new flow.",
    )


class GenerateFlowResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    flow: CreateFlowToolInput
    validation_result: ValidationResultModel = Field(..., alias="validationResult")


# ---------------------------------------------------------------------------
# Request side
# ---------------------------------------------------------------------------


def validate_prompt(prompt: Any, settings: Settings | None = None) -> str:
    """Return the trimmed prompt, or raise GeneratorError("INVALID_PROMPT")."""
    settings = settings or Settings()
    if not prompt or not isinstance(prompt, str):
        raise GeneratorError("Prompt is required and must be a string", code="INVALID_PROMPT")
    trimmed = prompt.strip()
    if not trimmed:
        raise GeneratorError("Prompt cannot be empty", code="INVALID_PROMPT")
    if len(trimmed) < settings.prompt_min_length:
        raise GeneratorError(
            f"Prompt must be at least {settings.prompt_min_length} characters",
            code="INVALID_PROMPT",
        )
    if len(trimmed) > settings.prompt_max_length:
        raise GeneratorError(
            f"Prompt must be at most {settings.prompt_max_length} characters",
            code="INVALID_PROMPT",
        )
    return trimmed


def build_request(
    prompt: Any,
    existing_flow: Flow | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Build the generate-flow request body."""
    request = GenerateFlowRequest(
        prompt=validate_prompt(prompt, settings),
        existing_flow=existing_flow.to_dict() if existing_flow is not None else None,
    )
    return request.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Response side
# ---------------------------------------------------------------------------


@dataclass
class GeneratedCandidate:
    """A generator result after normalization and local validation.

    flow:          The normalized candidate graph (no identity fields).
    server_result: The generator's own validation result.
    local_report:  Our validate_flow() report for the same graph.
    """

    flow: Flow
    server_result: ValidationResultModel
    local_report: FlowValidationReport

    @property
    def ready_to_apply(self) -> bool:
        return (
            self.server_result.validation_status != "errors"
            and self.local_report.ok
        )

    @property
    def status(self) -> str:
        """Worst of the server and local statuses."""
        order = ("valid", "warnings", "errors")
        return max(
            self.server_result.validation_status,
            self.local_report.status,
            key=order.index,
        )


def prepare_candidate(
    payload: Mapping[str, Any] | GenerateFlowResponse,
    catalog: Mapping[str, ComponentType],
    policy: GraphPolicy = DEFAULT_POLICY,
) -> GeneratedCandidate:
    """Turn a generate-flow response into a validated, never-corrected candidate.

    Raises GeneratorError("INVALID_GENERATOR_OUTPUT") when the response does
    not match the contract or the graph is structurally broken.
    """
    try:
        response = (
            payload if isinstance(payload, GenerateFlowResponse)
            else GenerateFlowResponse.model_validate(payload)
        )
    except PydanticValidationError as e:
        raise GeneratorError(
            "Generator response does not match the create_flow contract",
            code="INVALID_GENERATOR_OUTPUT",
            details={"errors": e.errors(include_url=False)},
        ) from e

    try:
        flow = normalize(response.flow.to_flow_dict())
        report = validate_flow(flow, catalog, policy)
    except FlowStructureError as e:
        raise GeneratorError(
            "Generated flow is structurally invalid: " + "; ".join(e.errors),
            code="INVALID_GENERATOR_OUTPUT",
            details={"errors": e.errors},
        ) from e

    unknown = response.validation_result.unknown_components
    if unknown:
        logger.info("Generator reported unknown components: %s", ", ".join(unknown))

    candidate = GeneratedCandidate(
        flow=flow, server_result=response.validation_result, local_report=report,
    )
    logger.debug(
        "Prepared generator candidate: %d node(s), status=%s, ready=%s",
        len(flow.nodes), candidate.status, candidate.ready_to_apply,
    )
    return candidate


def apply_candidate(existing: Flow | None, candidate: GeneratedCandidate) -> Flow:
    """Return a new Flow: ``existing``'s identity with the candidate's graph.

    ``existing`` is not modified. Raises GeneratorError("CANDIDATE_NOT_READY")
    for a candidate that is not ready to apply.
    """
    if not candidate.ready_to_apply:
        raise GeneratorError(
            f"Generated flow has validation status '{candidate.status}' "
            "and cannot be applied",
            code="CANDIDATE_NOT_READY",
        )
    if existing is None:
        return candidate.flow.copy()
    graph = candidate.flow.copy()
    return dataclasses.replace(
        existing.copy(), nodes=graph.nodes, connections=graph.connections,
    )
