"""Tests for the AI flow generator boundary (flowbuilder.generator).

Covers:
  - prompt validation (trim, length limits, configurable via Settings)
  - request body shape
  - prepare_candidate: contract parsing, normalization, local validation
  - ready_to_apply requires server status != errors AND a clean local report
  - a candidate with errors is never corrected and never applied
  - apply_candidate keeps the existing flow's identity
"""

from __future__ import annotations

import pytest

from flowbuilder.catalog import ComponentCatalog
from flowbuilder.config import DEFAULT_CATALOG_PATH, GraphPolicy, Settings
from flowbuilder.errors import GeneratorError
from flowbuilder.flow import Flow
from flowbuilder.generator import (
    GenerateFlowResponse,
    apply_candidate,
    build_request,
    prepare_candidate,
    validate_prompt,
)


@pytest.fixture(scope="module")
def catalog() -> ComponentCatalog:
    return ComponentCatalog.from_snapshot(DEFAULT_CATALOG_PATH)


_NODES = [
    {
        "id": "udp-input-1",
        "type": "udp-input",
        "name": "UDP Input",
        "position": {"x": 100, "y": 100},
        "config": {"port": 14550, "host": "0.0.0.0"},
    },
    {
        "id": "log-output-1",
        "type": "log-output",
        "name": "Log",
        "position": {"x": 400, "y": 100},
        "config": {"log_level": "info"},
    },
]

_CONNECTIONS = [
    {
        "id": "conn_udp-input-1_log-output-1_out",
        "source_node_id": "udp-input-1",
        "source_port": "out",
        "target_node_id": "log-output-1",
        "target_port": "in",
    },
]


def _response(
    nodes=_NODES,
    connections=_CONNECTIONS,
    status: str = "valid",
    errors: list | None = None,
) -> dict:
    return {
        "flow": {"nodes": nodes, "connections": connections},
        "validationResult": {
            "validation_status": status,
            "errors": errors or [],
            "warnings": [],
        },
    }


@pytest.fixture
def existing() -> Flow:
    return Flow.from_dict({
        "id": "flow-9",
        "name": "Drone telemetry",
        "version": 5,
        "runtime_state": "running",
        "nodes": [{"id": "old", "type": "log-output", "config": {}}],
        "connections": [],
        "created_at": "2026-01-01T00:00:00Z",
    })


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


class TestPrompt:
    def test_trimmed(self):
        assert validate_prompt("  Read UDP on 14550 and log it  ") == (
            "Read UDP on 14550 and log it"
        )

    @pytest.mark.parametrize("prompt", [None, "", "   ", 42])
    def test_missing_or_not_a_string(self, prompt):
        with pytest.raises(GeneratorError) as exc:
            validate_prompt(prompt)
        assert exc.value.code == "INVALID_PROMPT"

    def test_too_short(self):
        with pytest.raises(GeneratorError, match="at least 10 characters"):
            validate_prompt("  log it  ")

    def test_too_long(self):
        with pytest.raises(GeneratorError, match="at most 2000 characters"):
            validate_prompt("x" * 2001)

    def test_limits_are_inclusive(self):
        assert validate_prompt("x" * 10)
        assert validate_prompt("x" * 2000)

    def test_limits_from_settings(self):
        settings = Settings(prompt_min_length=3, prompt_max_length=5)
        assert validate_prompt("abc", settings) == "abc"
        with pytest.raises(GeneratorError):
            validate_prompt("abcdef", settings)


class TestBuildRequest:
    def test_new_flow(self):
        body = build_request("Read UDP and log every packet")
        assert body == {"prompt": "Read UDP and log every packet"}

    def test_existing_flow(self, existing):
        body = build_request("Add a processor before the log", existing)
        assert body["existingFlow"]["id"] == "flow-9"
        assert body["existingFlow"]["nodes"][0]["id"] == "old"

    def test_invalid_prompt_raises(self):
        with pytest.raises(GeneratorError):
            build_request("short")


# ---------------------------------------------------------------------------
# prepare_candidate
# ---------------------------------------------------------------------------


class TestPrepareCandidate:
    def test_valid_candidate_is_ready(self, catalog):
        candidate = prepare_candidate(_response(), catalog)
        assert candidate.ready_to_apply
        assert candidate.status == "valid"
        assert [n.id for n in candidate.flow.nodes] == ["udp-input-1", "log-output-1"]

    def test_accepts_parsed_response(self, catalog):
        response = GenerateFlowResponse.model_validate(_response())
        assert prepare_candidate(response, catalog).ready_to_apply

    def test_null_collections_normalized(self, catalog):
        candidate = prepare_candidate(_response(nodes=None, connections=None), catalog)
        assert candidate.flow.nodes == []
        assert candidate.flow.connections == []

    def test_server_errors_block_apply(self, catalog):
        errors = [{
            "type": "unknown_component",
            "severity": "error",
            "component_name": "kafka-input",
            "message": "Component type not found",
            "suggestions": ["Use udp-input"],
        }]
        candidate = prepare_candidate(_response(status="errors", errors=errors), catalog)
        assert not candidate.ready_to_apply
        assert candidate.status == "errors"
        assert candidate.server_result.unknown_components == ["kafka-input"]

    def test_local_errors_block_apply(self, catalog):
        bad = [dict(_NODES[0], config={"port": 99999, "host": "0.0.0.0"}), _NODES[1]]
        candidate = prepare_candidate(_response(nodes=bad), catalog)
        assert not candidate.ready_to_apply
        assert candidate.status == "errors"
        assert candidate.local_report.errors_for("udp-input-1")[0].code == "max"

    def test_never_auto_corrected(self, catalog):
        bad = [dict(_NODES[0], config={"port": 99999, "host": "0.0.0.0"})]
        candidate = prepare_candidate(_response(nodes=bad, connections=[]), catalog)
        assert candidate.flow.get_node("udp-input-1").config["port"] == 99999

    def test_unknown_component_policy(self, catalog):
        nodes = [{"id": "k", "type": "kafka-input", "name": "Kafka", "config": {}}]
        response = _response(nodes=nodes, connections=[])
        assert prepare_candidate(response, catalog).ready_to_apply
        strict = prepare_candidate(response, catalog, GraphPolicy(unknown_components="error"))
        assert not strict.ready_to_apply

    def test_contract_mismatch(self, catalog):
        with pytest.raises(GeneratorError) as exc:
            prepare_candidate({"flow": {"nodes": []}}, catalog)
        assert exc.value.code == "INVALID_GENERATOR_OUTPUT"

    def test_node_without_id(self, catalog):
        with pytest.raises(GeneratorError) as exc:
            prepare_candidate(_response(nodes=[{"type": "udp-input"}]), catalog)
        assert exc.value.code == "INVALID_GENERATOR_OUTPUT"

    def test_dangling_connection(self, catalog):
        with pytest.raises(GeneratorError) as exc:
            prepare_candidate(_response(nodes=_NODES[:1]), catalog)
        assert exc.value.code == "INVALID_GENERATOR_OUTPUT"
        assert any("not found in flow" in e for e in exc.value.details["errors"])


# ---------------------------------------------------------------------------
# apply_candidate
# ---------------------------------------------------------------------------


class TestApplyCandidate:
    def test_keeps_identity_replaces_graph(self, catalog, existing):
        candidate = prepare_candidate(_response(), catalog)
        applied = apply_candidate(existing, candidate)
        assert applied.id == "flow-9"
        assert applied.version == 5
        assert applied.runtime_state == "running"
        assert applied.created_at == "2026-01-01T00:00:00Z"
        assert [n.id for n in applied.nodes] == ["udp-input-1", "log-output-1"]
        assert len(applied.connections) == 1

    def test_existing_flow_untouched(self, catalog, existing):
        before = existing.to_dict()
        apply_candidate(existing, prepare_candidate(_response(), catalog))
        assert existing.to_dict() == before

    def test_applied_graph_is_independent_of_candidate(self, catalog, existing):
        candidate = prepare_candidate(_response(), catalog)
        applied = apply_candidate(existing, candidate)
        applied.set_config_value("udp-input-1", "port", 1)
        assert candidate.flow.get_node("udp-input-1").config["port"] == 14550

    def test_new_flow(self, catalog):
        candidate = prepare_candidate(_response(), catalog)
        applied = apply_candidate(None, candidate)
        assert applied.id == ""
        assert len(applied.nodes) == 2

    def test_not_ready_refused(self, catalog, existing):
        candidate = prepare_candidate(_response(status="errors"), catalog)
        with pytest.raises(GeneratorError) as exc:
            apply_candidate(existing, candidate)
        assert exc.value.code == "CANDIDATE_NOT_READY"
