"""
consentkit: per-capability visitor consent with ordered callback dispatch.

Integrators declare named capabilities (functional, analytics, marketing, ...)
that a visitor accepts or rejects individually. The engine persists the
decision and notifies each capability's callbacks when its state becomes
accepted, rejected or changed across visits.
"""

from .browser import attach_to_page
from .capabilities import CapabilityDescriptor, CapabilityRegistry, Choice, ChoiceVector
from .config import ConsentConfig
from .engine import ConsentEngine, EngineState
from .events import EventKind, EventQueue
from .exceptions import ConfigurationError, ConsentError, UnknownChoiceError
from .form import FormBinding, MemoryFormBinding, PlaywrightFormBinding
from .presentation import Element, MemoryPresenter, PlaywrightPresenter, Presenter
from .store import (
    ChoiceStore,
    CookieScope,
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    PersistedRecord,
    PlaywrightCookieStore,
)

__all__ = [
    "CapabilityDescriptor",
    "CapabilityRegistry",
    "Choice",
    "ChoiceStore",
    "ChoiceVector",
    "ConfigurationError",
    "ConsentConfig",
    "ConsentEngine",
    "ConsentError",
    "CookieScope",
    "Element",
    "EngineState",
    "EventKind",
    "EventQueue",
    "FormBinding",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryFormBinding",
    "MemoryKeyValueStore",
    "MemoryPresenter",
    "PersistedRecord",
    "PlaywrightCookieStore",
    "PlaywrightFormBinding",
    "PlaywrightPresenter",
    "Presenter",
    "UnknownChoiceError",
    "attach_to_page",
]

