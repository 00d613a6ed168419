"""flowbuilder — flow graph model and component config validation.

Entry points:
    normalize(raw) → Flow                       — single gate for external flow payloads
    validate_config(config, schema) → [ValidationError]
    validate_flow(flow, catalog, policy) → FlowValidationReport
    SaveGate(catalog, policy).authorize(flow) → payload str

Supporting pieces:
    ComponentCatalog  — read-only component type lookup, injected per session
    FlowHistory       — bounded undo/redo of Flow snapshots
    prepare_candidate / apply_candidate — AI generator output, validated
                        and applied only when ready
    FlowApiError / GeneratorError — boundary failures carrying server payloads
"""

from flowbuilder.catalog import CatalogError, ComponentCatalog
from flowbuilder.config import DEFAULT_POLICY, GraphPolicy, Settings
from flowbuilder.errors import (
    FlowApiError,
    FlowbuilderError,
    GeneratorError,
    parse_server_errors,
)
from flowbuilder.flow import (
    Flow,
    FlowConnection,
    FlowNode,
    FlowStructureError,
    Position,
    check_structure,
    is_dirty,
)
from flowbuilder.generator import (
    GeneratedCandidate,
    GenerateFlowResponse,
    apply_candidate,
    build_request,
    prepare_candidate,
    validate_prompt,
)
from flowbuilder.history import FlowHistory
from flowbuilder.normalizer import normalize
from flowbuilder.save_gate import (
    FlowNotReadyError,
    FlowValidationReport,
    SaveGate,
    ValidationIssue,
    is_valid_for_save,
    validate_flow,
)
from flowbuilder.schema import (
    ComponentType,
    ConfigSchema,
    PortDefinition,
    PropertySchema,
    ValidationError,
)
from flowbuilder.validator import (
    coerce_value,
    errors_by_field,
    merge_errors,
    validate_config,
    validate_field,
)

__all__ = [
    # Schema model
    "ComponentType",
    "ConfigSchema",
    "PortDefinition",
    "PropertySchema",
    "ValidationError",
    # Validation
    "coerce_value",
    "errors_by_field",
    "merge_errors",
    "validate_config",
    "validate_field",
    # Flow graph
    "Flow",
    "FlowConnection",
    "FlowNode",
    "FlowStructureError",
    "Position",
    "check_structure",
    "is_dirty",
    "normalize",
    # Catalog / policy / settings
    "CatalogError",
    "ComponentCatalog",
    "DEFAULT_POLICY",
    "GraphPolicy",
    "Settings",
    # Save gate
    "FlowNotReadyError",
    "FlowValidationReport",
    "SaveGate",
    "ValidationIssue",
    "is_valid_for_save",
    "validate_flow",
    # History
    "FlowHistory",
    # Generator
    "GeneratedCandidate",
    "GenerateFlowResponse",
    "apply_candidate",
    "build_request",
    "prepare_candidate",
    "validate_prompt",
    # Errors
    "FlowApiError",
    "FlowbuilderError",
    "GeneratorError",
    "parse_server_errors",
]
