"""Tests for the tool and resource registries."""

from __future__ import annotations

import pytest

from mcplink.protocol.messages import ResourceDescriptor, ToolDescriptor
from mcplink.server.registry import ResourceRegistry, ToolRegistry


def _noop(params: dict) -> None:
    return None


class TestToolRegistry:
    def test_register_and_get(self) -> None:
        registry = ToolRegistry()
        registry.register(ToolDescriptor(name="a"), _noop)

        entry = registry.get("a")
        assert entry is not None
        assert entry.handler is _noop
        assert "a" in registry
        assert len(registry) == 1

    def test_missing(self) -> None:
        assert ToolRegistry().get("nope") is None

    def test_duplicate_name(self) -> None:
        registry = ToolRegistry()
        registry.register(ToolDescriptor(name="a"), _noop)
        with pytest.raises(ValueError, match="Duplicate tool"):
            registry.register(ToolDescriptor(name="a", description="again"), _noop)

    def test_descriptors_keep_registration_order(self) -> None:
        registry = ToolRegistry()
        for name in ("b", "a", "c"):
            registry.register(ToolDescriptor(name=name), _noop)
        assert [d.name for d in registry.descriptors()] == ["b", "a", "c"]

    def test_frozen(self) -> None:
        registry = ToolRegistry()
        registry.freeze()
        assert registry.frozen
        with pytest.raises(RuntimeError, match="tool 'a'"):
            registry.register(ToolDescriptor(name="a"), _noop)


class TestResourceRegistry:
    def test_keyed_by_uri(self) -> None:
        registry = ResourceRegistry()
        registry.register(ResourceDescriptor(uri="mem://x", name="x"), lambda: "x")
        assert "mem://x" in registry
        assert registry.get("x") is None

    def test_duplicate_uri(self) -> None:
        registry = ResourceRegistry()
        registry.register(ResourceDescriptor(uri="mem://x", name="x"), lambda: "x")
        with pytest.raises(ValueError, match="Duplicate resource"):
            registry.register(ResourceDescriptor(uri="mem://x", name="y"), lambda: "y")
