"""End-to-end tests: connector talking to a ServiceHost over WebSocket."""

import asyncio
import pytest
from unittest.mock import MagicMock

from marionette_mcp.target.binding import MarionetteBinding
from marionette_mcp.target.configuration import MarionetteConfiguration
from marionette_mcp.target.extensions import ExtensionRegistry
from marionette_mcp.target.logs import PrintLogCollector
from marionette_mcp.target.result import ExtensionError, ExtensionSuccess
from marionette_mcp.target.service import ServiceHost
from marionette_mcp.vm.client import VmServiceClient
from marionette_mcp.vm.connector import VmServiceConnector
from marionette_mcp.vm.errors import ConnectionFailedError, ExtensionCallError, RPCError


class TestServiceHostEndToEnd:
    """Tests driving a real ServiceHost through the connector."""

    @pytest.mark.asyncio
    async def test_register_connect_invoke(self, scene):
        """Test a custom extension registered by the app can be called."""
        binding = MarionetteBinding(scene)

        async def current_route(params):
            return ExtensionSuccess({"route": "/home", "depth": params.get("depth")})

        binding.register_extension("nav.get", current_route)
        connector = VmServiceConnector()

        async with ServiceHost() as host:
            host.add_binding(binding)
            await connector.connect(host.uri)
            try:
                result = await connector.call_custom_extension("nav.get", {"depth": 2})
            finally:
                await connector.disconnect()

        assert result["method"] == "ext.flutter.nav.get"
        assert result["status"] == "Success"
        assert result["type"] == "_extensionType"
        assert result["route"] == "/home"
        assert result["depth"] == "2"

    @pytest.mark.asyncio
    async def test_builtin_extensions_over_the_wire(self, scene):
        """Test tap, enter text and element listing end to end."""
        binding = MarionetteBinding(scene)
        connector = VmServiceConnector()

        async with ServiceHost() as host:
            host.add_binding(binding)
            await connector.connect(host.uri)
            try:
                await connector.tap_element({"key": "increment"})
                await connector.enter_text({"key": "name"}, "Ada")
                response = await connector.get_interactive_elements()
            finally:
                await connector.disconnect()

        by_key = {e.get("key"): e for e in response["elements"]}
        assert by_key["counter"]["text"] == "Counter: 1"
        assert by_key["name"]["text"] == "Ada"

    @pytest.mark.asyncio
    async def test_application_error_over_the_wire(self, scene):
        """Test application errors arrive as ExtensionCallError with code and detail."""
        connector = VmServiceConnector()

        async with ServiceHost() as host:
            host.add_binding(MarionetteBinding(scene))
            await connector.connect(host.uri)
            try:
                with pytest.raises(ExtensionCallError) as exc_info:
                    await connector.tap_element({"key": "nope"})
            finally:
                await connector.disconnect()

        assert exc_info.value.code == -32015
        assert "not found" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_fault_over_the_wire(self, scene):
        """Test an uncaught handler exception reaches the caller and the error channel."""
        reporter = MagicMock()
        binding = MarionetteBinding(scene, error_reporter=reporter)

        async def explode(params):
            raise RuntimeError("boom")

        binding.register_extension("explode", explode)
        connector = VmServiceConnector()

        async with ServiceHost() as host:
            host.add_binding(binding)
            await connector.connect(host.uri)
            try:
                with pytest.raises(ExtensionCallError) as exc_info:
                    await connector.call_custom_extension("explode")
            finally:
                await connector.disconnect()

        assert exc_info.value.code == -32000
        assert "boom" in exc_info.value.details
        assert "ext.flutter.explode" in exc_info.value.details
        reporter.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_skips_isolates_without_binding(self, scene):
        """Test the isolate with the liveness extension is selected."""
        connector = VmServiceConnector()

        async with ServiceHost() as host:
            host.add_isolate(ExtensionRegistry(), name="worker")
            isolate = host.add_binding(MarionetteBinding(scene))
            await connector.connect(host.uri)
            try:
                assert connector.isolate_id == isolate.id
            finally:
                await connector.disconnect()

    @pytest.mark.asyncio
    async def test_connect_without_binding_fails(self):
        """Test connecting to a VM with no marionette isolate fails."""
        connector = VmServiceConnector()

        async with ServiceHost() as host:
            host.add_isolate(ExtensionRegistry())
            with pytest.raises(ConnectionFailedError):
                await connector.connect(host.uri)

        assert not connector.is_connected

    @pytest.mark.asyncio
    async def test_connect_refused(self):
        """Test an unreachable URI raises ConnectionFailedError."""
        async with ServiceHost() as host:
            uri = host.uri

        with pytest.raises(ConnectionFailedError):
            await VmServiceConnector().connect(uri)


class TestHotReloadEndToEnd:
    """Tests for hot reload through a ServiceHost."""

    @pytest.mark.asyncio
    async def test_vm_reload_reassembles(self, scene):
        """Test VM reloadSources clears the app's logs."""
        collector = PrintLogCollector()
        binding = MarionetteBinding(scene, MarionetteConfiguration(log_collector=collector))
        collector.add_log("before reload")
        connector = VmServiceConnector(service_wait_timeout=0.05)

        async with ServiceHost() as host:
            host.add_binding(binding)
            await connector.connect(host.uri)
            try:
                result = await connector.hot_reload()
                logs = await connector.get_logs()
            finally:
                await connector.disconnect()

        assert result.success
        assert result.via == "vm"
        assert result.details["type"] == "ReloadReport"
        assert logs["count"] == 0

    @pytest.mark.asyncio
    async def test_registered_reload_service_preferred(self, scene):
        """Test a reloadSources service registered before connecting is used."""
        calls = []

        async def reload_service(params):
            calls.append(params)
            return {"type": "Success"}

        connector = VmServiceConnector()

        async with ServiceHost() as host:
            host.add_binding(MarionetteBinding(scene))
            alias = host.register_service("reloadSources", reload_service)
            await connector.connect(host.uri)
            try:
                result = await connector.hot_reload()
            finally:
                await connector.disconnect()

        assert alias == "s1.reloadSources"
        assert result.success
        assert result.via == "service"
        assert calls[0]["isolateId"] == "isolates/1"

    @pytest.mark.asyncio
    async def test_service_registered_while_waiting(self, scene):
        """Test a waiter resolves when a service is registered later."""
        connector = VmServiceConnector()

        async def handler(params):
            return {"type": "Success"}

        async with ServiceHost() as host:
            host.add_binding(MarionetteBinding(scene))
            await connector.connect(host.uri)
            try:
                waiter = asyncio.create_task(connector.wait_for_service("inspect", 2.0))
                await asyncio.sleep(0.05)
                host.register_service("inspect", handler)
                method = await waiter
            finally:
                await connector.disconnect()

        assert method == "s1.inspect"

    @pytest.mark.asyncio
    async def test_reassemble_failure_reported(self, scene):
        """Test a failing reassemble hook yields an unsuccessful report."""
        def reassemble():
            raise RuntimeError("compile error")

        registry = MarionetteBinding(scene).extensions
        connector = VmServiceConnector(service_wait_timeout=0.05)

        async with ServiceHost() as host:
            host.add_isolate(registry, reassemble=reassemble)
            await connector.connect(host.uri)
            try:
                result = await connector.hot_reload()
            finally:
                await connector.disconnect()

        assert not result.success
        assert result.details["notices"][0]["message"] == "compile error"


class TestServiceHostProtocol:
    """Tests for raw VM service requests."""

    @pytest.mark.asyncio
    async def test_get_vm_and_isolate(self, scene):
        """Test getVM lists isolates and getIsolate lists extensions."""
        async with ServiceHost() as host:
            isolate = host.add_binding(MarionetteBinding(scene), name="app")
            client = VmServiceClient(host.uri)
            await client.connect()
            try:
                vm = await client.get_vm()
                details = await client.get_isolate(isolate.id)
            finally:
                await client.close()

        assert vm["isolates"] == [{"type": "@Isolate", "id": isolate.id, "name": "app"}]
        assert "ext.flutter.marionette.tap" in details["extensionRPCs"]

    @pytest.mark.asyncio
    async def test_stream_subscription_errors(self):
        """Test double subscribe and unsubscribed cancel are errors."""
        async with ServiceHost() as host:
            client = VmServiceClient(host.uri)
            await client.connect()
            try:
                await client.stream_listen("Isolate")
                with pytest.raises(RPCError) as listen_error:
                    await client.stream_listen("Isolate")
                await client.stream_cancel("Isolate")
                with pytest.raises(RPCError) as cancel_error:
                    await client.stream_cancel("Isolate")
            finally:
                await client.close()

        assert listen_error.value.code == 103
        assert cancel_error.value.code == 104

    @pytest.mark.asyncio
    async def test_extension_added_event(self):
        """Test registering an extension notifies Isolate stream listeners."""
        registry = ExtensionRegistry()
        events = []

        async def handler(params):
            return ExtensionError(4, "unused")

        async with ServiceHost() as host:
            host.add_isolate(registry)
            client = VmServiceClient(host.uri)
            client.on_event("Isolate", events.append)
            await client.connect()
            try:
                await client.stream_listen("Isolate")
                registry.register("late.extension", handler)
                for _ in range(50):
                    if events:
                        break
                    await asyncio.sleep(0.01)
            finally:
                await client.close()

        assert events[0].kind == "ServiceExtensionAdded"
        assert events[0].data["extensionRPC"] == "ext.flutter.late.extension"

    @pytest.mark.asyncio
    async def test_unknown_method(self):
        """Test unknown methods answer METHOD_NOT_FOUND."""
        async with ServiceHost() as host:
            client = VmServiceClient(host.uri)
            await client.connect()
            try:
                with pytest.raises(RPCError) as exc_info:
                    await client.call("getFlags")
            finally:
                await client.close()

        assert exc_info.value.code == -32601

    @pytest.mark.asyncio
    async def test_port_requires_running_host(self):
        """Test the port is only known while serving."""
        host = ServiceHost()

        with pytest.raises(RuntimeError):
            host.port
