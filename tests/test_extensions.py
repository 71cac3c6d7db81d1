"""Tests for the extension registry and dispatcher."""

import asyncio
import json
import pytest
from unittest.mock import MagicMock

from marionette_mcp.target.errors import InvalidParamsError
from marionette_mcp.target.extensions import ExtensionRegistry, ServiceExtensionResponse
from marionette_mcp.target.result import (
    EXTENSION_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    ExtensionError,
    ExtensionInvalidParams,
    ExtensionSuccess,
)


async def ok(params):
    return ExtensionSuccess({"echo": params})


class TestRegistration:
    """Tests for registering extensions."""

    def test_register_adds_prefix(self):
        """Test extensions are registered under their wire name."""
        registry = ExtensionRegistry()

        registry.register("nav.get", ok)

        assert registry.has("ext.flutter.nav.get")
        assert registry.methods == ["ext.flutter.nav.get"]

    def test_register_empty_name(self):
        """Test empty names are rejected."""
        with pytest.raises(ValueError):
            ExtensionRegistry().register("", ok)

    def test_register_prefixed_name(self):
        """Test names carrying the reserved prefix are rejected."""
        with pytest.raises(ValueError, match="prefix"):
            ExtensionRegistry().register("ext.flutter.nav.get", ok)

    def test_register_duplicate(self):
        """Test the same name cannot be registered twice."""
        registry = ExtensionRegistry()
        registry.register("nav.get", ok)

        with pytest.raises(ValueError, match="already registered"):
            registry.register("nav.get", ok)

    def test_custom_extensions_exclude_internal(self):
        """Test only app-registered extensions are listed."""
        registry = ExtensionRegistry()
        registry.register_internal("marionette.tap", ok)
        registry.register("nav.get", ok, description="Current route")
        registry.register("nav.back", ok)

        assert registry.custom_extensions == [
            {"name": "nav.get", "description": "Current route"},
            {"name": "nav.back"},
        ]

    def test_on_registered_listener(self):
        """Test listeners hear about new extensions."""
        registry = ExtensionRegistry()
        listener = MagicMock()
        registry.on_registered(listener)

        registry.register("nav.get", ok)

        listener.assert_called_once_with("ext.flutter.nav.get")


class TestDispatch:
    """Tests for dispatching extension calls."""

    @pytest.mark.asyncio
    async def test_success_is_tagged(self):
        """Test successful results carry type, method and status markers."""
        registry = ExtensionRegistry()
        registry.register("nav.get", ok)

        response = await registry.dispatch("ext.flutter.nav.get", {"a": "1"})

        assert not response.is_error
        assert response.result == {
            "echo": {"a": "1"},
            "type": "_extensionType",
            "method": "ext.flutter.nav.get",
            "status": "Success",
        }

    @pytest.mark.asyncio
    async def test_unknown_method(self):
        """Test unknown methods answer METHOD_NOT_FOUND."""
        response = await ExtensionRegistry().dispatch("ext.flutter.nope", {})

        assert response.error_code == METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_handler_runs_after_current_iteration(self):
        """Test the handler starts only after already scheduled callbacks."""
        order = []

        async def handler(params):
            order.append("handler")
            return ExtensionSuccess()

        registry = ExtensionRegistry()
        registry.register("probe", handler)

        loop = asyncio.get_running_loop()
        task = asyncio.create_task(registry.dispatch("ext.flutter.probe", {}))
        # Scheduled after the task's first step, before its deferred second
        loop.call_soon(order.append, "frame")
        await task

        assert order == ["frame", "handler"]

    @pytest.mark.asyncio
    async def test_application_error_offset(self):
        """Test application errors map onto the reserved code range."""
        async def handler(params):
            return ExtensionError(3, "no scrollable")

        registry = ExtensionRegistry()
        registry.register("scroll", handler)

        response = await registry.dispatch("ext.flutter.scroll", {})

        assert response.error_code == -32013
        assert response.error_detail == "no scrollable"

    @pytest.mark.asyncio
    async def test_invalid_params_result(self):
        """Test ExtensionInvalidParams maps to INVALID_PARAMS."""
        async def handler(params):
            return ExtensionInvalidParams("Missing required parameter: input")

        registry = ExtensionRegistry()
        registry.register("type", handler)

        response = await registry.dispatch("ext.flutter.type", {})

        assert response == ServiceExtensionResponse.error(
            INVALID_PARAMS, "Missing required parameter: input"
        )

    @pytest.mark.asyncio
    async def test_validation_error_is_invalid_params(self):
        """Test InvalidParamsError raised by a handler is treated as bad input."""
        reporter = MagicMock()

        async def handler(params):
            raise InvalidParamsError("Matcher must contain a field")

        registry = ExtensionRegistry(error_reporter=reporter)
        registry.register("find", handler)

        response = await registry.dispatch("ext.flutter.find", {})

        assert response == ServiceExtensionResponse.error(
            INVALID_PARAMS, "Matcher must contain a field"
        )
        reporter.assert_not_called()

    @pytest.mark.asyncio
    async def test_internal_value_error_is_reported(self):
        """Test a ValueError from the handler's own logic is a fault, not bad input."""
        reporter = MagicMock()

        async def handler(params):
            return ExtensionSuccess({"count": int("not-a-number")})

        registry = ExtensionRegistry(error_reporter=reporter)
        registry.register("count", handler)

        response = await registry.dispatch("ext.flutter.count", {})

        assert response.error_code == EXTENSION_ERROR
        assert "ValueError" in json.loads(response.error_detail)["stack"]
        reporter.assert_called_once()

    @pytest.mark.asyncio
    async def test_uncaught_exception_is_reported(self):
        """Test unexpected exceptions become a fault and reach the error channel."""
        reporter = MagicMock()

        async def handler(params):
            raise RuntimeError("boom")

        registry = ExtensionRegistry(error_reporter=reporter)
        registry.register("explode", handler)

        response = await registry.dispatch("ext.flutter.explode", {})

        assert response.error_code == EXTENSION_ERROR
        detail = json.loads(response.error_detail)
        assert detail["exception"] == "boom"
        assert detail["method"] == "ext.flutter.explode"
        assert "RuntimeError" in detail["stack"]

        reporter.assert_called_once()
        report = reporter.call_args[0][0]
        assert str(report.exception) == "boom"
        assert "ext.flutter.explode" in report.context

    @pytest.mark.asyncio
    async def test_wrong_result_type_is_a_fault(self):
        """Test a handler returning something else is reported as a fault."""
        reporter = MagicMock()

        async def handler(params):
            return {"not": "a result"}

        registry = ExtensionRegistry(error_reporter=reporter)
        registry.register("bad", handler)

        response = await registry.dispatch("ext.flutter.bad", {})

        assert response.error_code == EXTENSION_ERROR
        reporter.assert_called_once()


class TestResultTypes:
    """Tests for extension result values."""

    def test_error_code_bounds(self):
        """Test offsets outside 0..16 are rejected."""
        assert ExtensionError(0, "x").wire_code == -32016
        assert ExtensionError(16, "x").wire_code == -32000

        with pytest.raises(AssertionError):
            ExtensionError(17, "x")
        with pytest.raises(AssertionError):
            ExtensionError(-1, "x")
