"""Pytest fixtures for marionette-mcp tests."""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from marionette_mcp.target.configuration import MarionetteConfiguration  # noqa: E402
from marionette_mcp.target.geometry import Rect, Size  # noqa: E402
from marionette_mcp.target.scene import Node, Scene, TextBuffer  # noqa: E402


def build_counter_scene() -> Scene:
    """A counter button, a text field and a 30-item list below them.

    The list occupies y 200..600 of an 800px-high view, so items 0-7 are
    reachable by a pointer and the rest are clipped or off screen.
    """
    counter = Node("Text", Rect(0, 0, 400, 40), key="counter", text="Counter: 0")
    count = [0]

    def increment():
        count[0] += 1
        counter.text = f"Counter: {count[0]}"

    button = Node(
        "ElevatedButton",
        Rect(0, 50, 200, 40),
        key="increment",
        on_tap=increment,
        children=[Node("Text", Rect(10, 10, 180, 20), text="Increment")],
    )
    field = Node(
        "TextField",
        Rect(0, 100, 400, 40),
        key="name",
        editable=TextBuffer(""),
        props={"hintText": "Your name"},
    )
    items = [
        Node("Text", Rect(0, i * 50, 400, 50), key=f"item-{i}", text=f"Item {i}")
        for i in range(30)
    ]
    list_view = Node("ListView", Rect(0, 200, 400, 400), key="list", children=items)

    root = Node("Scaffold", Rect(0, 0, 400, 800), children=[counter, button, field, list_view])
    return Scene(root, viewport=Size(400, 800))


@pytest.fixture
def scene():
    """Fresh counter scene."""
    return build_counter_scene()


@pytest.fixture
def configuration():
    """Default configuration with fast scrolling."""
    return MarionetteConfiguration(max_scrolls=50, scroll_delta=64.0)


@pytest.fixture
def sample_isolate():
    """Sample getIsolate result exposing the marionette extensions."""
    return {
        "type": "Isolate",
        "id": "isolates/1",
        "name": "main",
        "extensionRPCs": [
            "ext.flutter.marionette.getLogs",
            "ext.flutter.marionette.tap",
        ],
    }


@pytest.fixture
def sample_vm():
    """Sample getVM result with one isolate."""
    return {
        "type": "VM",
        "name": "vm",
        "isolates": [{"type": "@Isolate", "id": "isolates/1", "name": "main"}],
    }
