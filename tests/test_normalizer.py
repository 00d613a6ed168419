"""Tests for the graph normalizer (flowbuilder.normalizer)."""

from __future__ import annotations

import json
import logging

import pytest

from flowbuilder.flow import Flow, FlowStructureError
from flowbuilder.normalizer import normalize

# A freshly created flow as the persistence API returns it.
_NEW_FLOW = {
    "id": "flow-new",
    "name": "Untitled",
    "version": 1,
    "runtime_state": "not_deployed",
    "nodes": None,
    "connections": None,
    "created_at": "2026-03-01T12:00:00Z",
}

_TWO_NODE_FLOW = {
    "id": "flow-2",
    "name": "Relay",
    "version": 7,
    "runtime_state": "running",
    "nodes": [
        {"id": "in", "type": "udp-input", "name": "In",
         "position": {"x": 0, "y": 0}, "config": {"port": 5000, "host": "0.0.0.0"}},
        {"id": "out", "type": "udp-output", "name": "Out",
         "position": {"x": 200, "y": 0}, "config": {"host": "10.0.0.2", "port": 6000}},
    ],
    "connections": [
        {"id": "conn_in_out_out", "source_node_id": "in", "source_port": "out",
         "target_node_id": "out", "target_port": "in"},
    ],
    "owner": "ops",
}


class TestNullCollections:
    def test_null_nodes_and_connections_become_empty_lists(self):
        flow = normalize(_NEW_FLOW)
        assert flow.nodes == []
        assert flow.connections == []

    def test_absent_collections_become_empty_lists(self):
        flow = normalize({"id": "f", "name": "n"})
        assert flow.nodes == [] and flow.connections == []

    def test_other_fields_pass_through(self):
        flow = normalize(_NEW_FLOW)
        assert flow.id == "flow-new"
        assert flow.version == 1
        assert flow.created_at == "2026-03-01T12:00:00Z"

    def test_input_not_mutated(self):
        raw = dict(_NEW_FLOW)
        normalize(raw)
        assert raw["nodes"] is None

    def test_generator_output_without_identity(self):
        """Generator output carries only the graph; identity takes defaults."""
        flow = normalize({"nodes": _TWO_NODE_FLOW["nodes"], "connections": None})
        assert flow.id == ""
        assert flow.version == 0
        assert flow.runtime_state == "not_deployed"
        assert [n.id for n in flow.nodes] == ["in", "out"]

    def test_none_payload(self):
        assert normalize(None) == Flow()


class TestIdempotence:
    def test_flow_instance_returned_as_is(self):
        flow = normalize(_TWO_NODE_FLOW)
        assert normalize(flow) is flow

    def test_canonical_dict_is_a_no_op(self):
        flow = normalize(_TWO_NODE_FLOW)
        again = normalize(flow.to_dict())
        assert again == flow
        assert again.to_dict() == _TWO_NODE_FLOW

    def test_twice_equals_once(self):
        once = normalize(_NEW_FLOW)
        assert normalize(once.to_dict()) == once


class TestDocuments:
    def test_json_string(self):
        assert normalize(json.dumps(_TWO_NODE_FLOW)) == normalize(_TWO_NODE_FLOW)

    def test_json_bytes(self):
        assert normalize(json.dumps(_NEW_FLOW).encode()) == normalize(_NEW_FLOW)

    def test_blank_document(self):
        assert normalize("  ") == Flow()

    def test_invalid_json(self):
        with pytest.raises(FlowStructureError, match="Invalid JSON"):
            normalize("{not json")

    def test_non_object_document(self):
        with pytest.raises(FlowStructureError, match="must be a JSON object, got list"):
            normalize("[]")

    def test_invalid_utf8(self):
        with pytest.raises(FlowStructureError, match="Invalid UTF-8"):
            normalize(b'{"name": "\xff"}')


class TestStructuralDefects:
    def test_dangling_connection_raises_by_default(self):
        raw = dict(_TWO_NODE_FLOW, nodes=_TWO_NODE_FLOW["nodes"][:1])
        with pytest.raises(FlowStructureError, match="target node 'out' not found"):
            normalize(raw)

    def test_drop_dangling(self, caplog):
        raw = dict(_TWO_NODE_FLOW, nodes=_TWO_NODE_FLOW["nodes"][:1])
        with caplog.at_level(logging.WARNING, logger="flowbuilder.normalizer"):
            flow = normalize(raw, drop_dangling=True)
        assert flow.connections == []
        assert "Dropping dangling connection 'conn_in_out_out'" in caplog.text

    def test_drop_dangling_keeps_resolving_connections(self):
        flow = normalize(_TWO_NODE_FLOW, drop_dangling=True)
        assert [c.id for c in flow.connections] == ["conn_in_out_out"]

    def test_duplicate_ids_still_raise_with_drop_dangling(self):
        node = _TWO_NODE_FLOW["nodes"][0]
        with pytest.raises(FlowStructureError, match="Duplicate node id 'in'"):
            normalize({"nodes": [node, node]}, drop_dangling=True)

    @pytest.mark.parametrize(
        "node, message",
        [
            ({"id": "a", "type": "log-output", "config": "abc"},
             "nodes[0]: config must be an object, got str"),
            ({"id": "a", "type": "log-output", "config": [1]},
             "nodes[0]: config must be an object, got list"),
            ({"id": "a", "type": "log-output", "position": [1, 2]},
             "nodes[0]: position must be an object, got list"),
        ],
    )
    def test_non_object_config_or_position(self, node, message):
        with pytest.raises(FlowStructureError) as exc:
            normalize({"nodes": [node]})
        assert exc.value.errors == [message]

    def test_error_names_the_offending_node_index(self):
        nodes = [{"id": "a", "type": "log-output"}, {"id": "b", "config": 7}]
        with pytest.raises(FlowStructureError, match=r"nodes\[1\]: config must be an object, got int"):
            normalize({"nodes": nodes})


class TestNullFields:
    def test_null_node_name_and_type_kept(self):
        flow = normalize({"nodes": [{"id": "a", "type": None, "name": None}]})
        node = flow.to_dict()["nodes"][0]
        assert node["type"] is None
        assert node["name"] is None

    def test_null_flow_name_kept(self):
        flow = normalize({"id": "f", "name": None})
        assert flow.name is None
        assert flow.to_dict()["name"] is None

    def test_absent_name_defaults_to_empty(self):
        assert normalize({"id": "f"}).name == ""

    def test_null_identity_fields_take_defaults(self):
        flow = normalize({"id": None, "version": None, "runtime_state": None})
        assert (flow.id, flow.version, flow.runtime_state) == ("", 0, "not_deployed")

    def test_round_trip(self):
        raw = {"nodes": [{"id": "a", "type": None, "name": None}]}
        flow = normalize(raw)
        assert normalize(flow.to_dict()) == flow
