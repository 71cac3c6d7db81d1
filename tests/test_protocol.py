"""Tests for VM service protocol types."""

import json
import pytest

from marionette_mcp.vm.protocol import (
    EXTENSION_PREFIX,
    EventKinds,
    Methods,
    RPCRequest,
    RPCResponse,
    StreamEvent,
    Streams,
    from_wire_name,
    parse_message,
    to_wire_name,
)


class TestRPCRequest:
    """Tests for RPCRequest."""

    def test_to_dict_with_params(self):
        """Test request serialization includes params."""
        request = RPCRequest(id="1", method="getIsolate", params={"isolateId": "isolates/1"})

        assert request.to_dict() == {
            "jsonrpc": "2.0",
            "id": "1",
            "method": "getIsolate",
            "params": {"isolateId": "isolates/1"},
        }

    def test_to_dict_omits_empty_params(self):
        """Test params are omitted when empty."""
        request = RPCRequest(id="2", method=Methods.GET_VM)

        assert "params" not in request.to_dict()

    def test_to_json_is_compact(self):
        """Test JSON encoding has no extra whitespace."""
        request = RPCRequest(id="3", method="getVM")

        assert " " not in request.to_json()
        assert json.loads(request.to_json())["method"] == "getVM"

    def test_from_dict_stringifies_id(self):
        """Test numeric ids are read as strings."""
        request = RPCRequest.from_dict({"id": 7, "method": "getVM"})

        assert request.id == "7"
        assert request.params == {}


class TestRPCResponse:
    """Tests for RPCResponse."""

    def test_success_response(self):
        """Test a result response is successful."""
        response = RPCResponse.from_dict({"jsonrpc": "2.0", "id": "1", "result": {"type": "Success"}})

        assert response.success
        assert response.error_code is None
        assert response.error_details is None

    def test_error_response(self):
        """Test error fields are exposed."""
        response = RPCResponse.from_dict({
            "id": "1",
            "error": {"code": -32015, "message": "Server error", "data": {"details": "not found"}},
        })

        assert not response.success
        assert response.error_code == -32015
        assert response.error_message == "Server error"
        assert response.error_details == "not found"

    def test_fault_without_details(self):
        """Test fault helper omits data when there are no details."""
        response = RPCResponse.fault("9", -32601, "Method not found")

        assert response.error == {"code": -32601, "message": "Method not found"}

    def test_fault_with_details(self):
        """Test fault helper nests details under data."""
        response = RPCResponse.fault("9", -32602, "Invalid params", "Missing input")

        assert response.to_dict()["error"]["data"] == {"details": "Missing input"}
        assert "result" not in response.to_dict()

    def test_to_dict_defaults_result(self):
        """Test a successful response always carries a result object."""
        assert RPCResponse("1").to_dict()["result"] == {}


class TestStreamEvent:
    """Tests for StreamEvent."""

    def test_to_dict_is_stream_notification(self):
        """Test events are encoded as streamNotify notifications."""
        event = StreamEvent(
            Streams.SERVICE,
            EventKinds.SERVICE_REGISTERED,
            {"service": "reloadSources", "method": "s1.reloadSources"},
        )

        data = event.to_dict()

        assert data["method"] == "streamNotify"
        assert "id" not in data
        assert data["params"]["streamId"] == "Service"
        assert data["params"]["event"]["kind"] == "ServiceRegistered"
        assert data["params"]["event"]["service"] == "reloadSources"

    def test_from_dict_strips_kind_and_type(self):
        """Test event payload excludes kind and type."""
        event = StreamEvent.from_dict({
            "method": "streamNotify",
            "params": {
                "streamId": "Isolate",
                "event": {"type": "Event", "kind": "ServiceExtensionAdded", "extensionRPC": "ext.flutter.x"},
            },
        })

        assert event.stream_id == "Isolate"
        assert event.kind == "ServiceExtensionAdded"
        assert event.data == {"extensionRPC": "ext.flutter.x"}


class TestParseMessage:
    """Tests for parse_message."""

    def test_parses_response(self):
        """Test responses are recognized."""
        assert isinstance(parse_message({"id": "1", "result": {}}), RPCResponse)

    def test_parses_error_response(self):
        """Test error responses are recognized."""
        assert isinstance(parse_message({"id": "1", "error": {"code": 1}}), RPCResponse)

    def test_parses_event(self):
        """Test stream notifications are recognized."""
        message = parse_message({"method": "streamNotify", "params": {"streamId": "Service", "event": {}}})

        assert isinstance(message, StreamEvent)

    def test_unknown_message_raises(self):
        """Test unknown messages raise ValueError."""
        with pytest.raises(ValueError):
            parse_message({"method": "getVM", "id": "1"})


class TestWireNames:
    """Tests for extension wire names."""

    def test_to_wire_name(self):
        """Test the reserved prefix is added."""
        assert to_wire_name("marionette.tap") == "ext.flutter.marionette.tap"

    def test_from_wire_name(self):
        """Test the reserved prefix is stripped."""
        assert from_wire_name(f"{EXTENSION_PREFIX}nav.get") == "nav.get"

    def test_from_wire_name_without_prefix(self):
        """Test names without the prefix are unchanged."""
        assert from_wire_name("s1.reloadSources") == "s1.reloadSources"
