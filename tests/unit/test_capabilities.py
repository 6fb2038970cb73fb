"""Unit tests for capability descriptors and the registry."""

from __future__ import annotations

from typing import Any

import pytest

from consentkit.capabilities import CapabilityDescriptor, CapabilityRegistry, Choice
from consentkit.events import EventKind
from consentkit.exceptions import ConfigurationError


def _noop(engine: Any, params: dict[str, Any]) -> None:
    pass


class TestCapabilityDescriptor:
    """Tests for the CapabilityDescriptor dataclass."""

    def test_no_opt_out_forces_default_checked(self) -> None:
        """Non-opt-out capabilities default to checked."""
        assert CapabilityDescriptor("functional", no_opt_out=True).default_value is True
        assert CapabilityDescriptor("ads").default_value is False
        assert CapabilityDescriptor("stats", checked=True).default_value is True

    def test_handler_for(self) -> None:
        """Each event kind resolves its own slot."""
        capability = CapabilityDescriptor("ads", on_accept=_noop)

        assert capability.handler_for(EventKind.ACCEPT) is _noop
        assert capability.handler_for(EventKind.REJECT) is None
        assert capability.handler_for(EventKind.UPDATE) is None

    def test_from_dict_accepts_camel_case(self) -> None:
        """JSON declarations may use noOptOut."""
        capability = CapabilityDescriptor.from_dict({"name": "functional", "noOptOut": True})

        assert capability.name == "functional"
        assert capability.no_opt_out is True
        assert capability.on_accept is None


class TestChoice:
    """Tests for the Choice dataclass."""

    def test_from_dict(self) -> None:
        assert Choice.from_dict({"name": "ads", "value": True}) == Choice("ads", True)

    @pytest.mark.parametrize(
        "data",
        [
            {"name": "ads"},
            {"name": 3, "value": True},
            {"name": "ads", "value": "yes"},
            ["ads", True],
        ],
    )
    def test_from_dict_malformed(self, data: Any) -> None:
        """Malformed choices raise TypeError."""
        with pytest.raises(TypeError):
            Choice.from_dict(data)


class TestCapabilityRegistry:
    """Tests for the CapabilityRegistry class."""

    def test_lookup(self) -> None:
        registry = CapabilityRegistry(
            [CapabilityDescriptor("functional", no_opt_out=True), CapabilityDescriptor("ads")]
        )

        assert registry.get("ads") is not None
        assert registry.get("ads").name == "ads"  # type: ignore[union-attr]
        assert registry.get("missing") is None
        assert "functional" in registry
        assert len(registry) == 2
        assert registry.names() == ["functional", "ads"]

    def test_defaults_in_registry_order(self) -> None:
        registry = CapabilityRegistry(
            [
                CapabilityDescriptor("functional", no_opt_out=True),
                CapabilityDescriptor("ads"),
                CapabilityDescriptor("stats", checked=True),
            ]
        )

        assert registry.defaults() == [
            Choice("functional", True),
            Choice("ads", False),
            Choice("stats", True),
        ]

    def test_duplicate_names_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Duplicate"):
            CapabilityRegistry([CapabilityDescriptor("ads"), CapabilityDescriptor("ads")])

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            CapabilityRegistry([CapabilityDescriptor("")])
