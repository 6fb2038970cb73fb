"""
Capability descriptors, choices and the capability registry.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .events import EventKind
from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .engine import ConsentEngine

Callback = Callable[["ConsentEngine", dict[str, Any]], Awaitable[None] | None]


@dataclass(frozen=True)
class Choice:
    """Checked state of one capability."""

    name: str
    value: bool

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Choice:
        """Create a Choice from its persisted form.

        Raises:
            TypeError: If the data is not a {"name": str, "value": bool} mapping
        """
        if not isinstance(data, dict):
            raise TypeError(f"Choice must be an object, got {type(data).__name__}")
        name = data.get("name")
        value = data.get("value")
        if not isinstance(name, str) or not isinstance(value, bool):
            raise TypeError(f"Malformed choice: {data!r}")
        return cls(name=name, value=value)


ChoiceVector = list[Choice]


@dataclass(frozen=True)
class CapabilityDescriptor:
    """A named, independently consentable feature.

    Each event kind has its own optional handler slot; a slot left as None
    means the capability does not react to that kind of event.
    """

    name: str
    checked: bool = False
    no_opt_out: bool = False

    on_update: Callback | None = None
    on_value_change: Callback | None = None
    on_accept: Callback | None = None
    on_reject: Callback | None = None

    @property
    def default_value(self) -> bool:
        """Initial checked state. Non-opt-out capabilities are always checked."""
        return self.checked or self.no_opt_out

    def handler_for(self, kind: EventKind) -> Callback | None:
        handler: Callback | None = getattr(self, kind.slot)
        return handler

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CapabilityDescriptor:
        """Create a hook-less descriptor from a JSON declaration."""
        if not isinstance(data, dict):
            raise ConfigurationError(f"Capability must be an object, got {data!r}")
        return cls(
            name=data.get("name", ""),
            checked=bool(data.get("checked", False)),
            no_opt_out=bool(data.get("no_opt_out", data.get("noOptOut", False))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "checked": self.checked, "no_opt_out": self.no_opt_out}


class CapabilityRegistry:
    """Ordered, immutable list of capability descriptors."""

    def __init__(self, descriptors: Iterable[CapabilityDescriptor]) -> None:
        self._descriptors = tuple(descriptors)

        seen: set[str] = set()
        for descriptor in self._descriptors:
            if not isinstance(descriptor, CapabilityDescriptor):
                raise ConfigurationError(f"Not a capability descriptor: {descriptor!r}")
            if not isinstance(descriptor.name, str) or not descriptor.name:
                raise ConfigurationError("Capability name must be a non-empty string")
            if descriptor.name in seen:
                raise ConfigurationError(f"Duplicate capability name: {descriptor.name}")
            seen.add(descriptor.name)

    def get(self, name: str) -> CapabilityDescriptor | None:
        """Return the first descriptor with this name, or None."""
        for descriptor in self._descriptors:
            if descriptor.name == name:
                return descriptor
        return None

    def defaults(self) -> ChoiceVector:
        """Descriptor-default choice vector, in registry order."""
        return [Choice(d.name, d.default_value) for d in self._descriptors]

    def names(self) -> list[str]:
        return [d.name for d in self._descriptors]

    def __iter__(self) -> Iterator[CapabilityDescriptor]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def __contains__(self, name: object) -> bool:
        return any(d.name == name for d in self._descriptors)
