"""
Configuration and path management for consentkit.
"""

from __future__ import annotations

import json
import os
import sys
import warnings
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .capabilities import CapabilityDescriptor
from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .engine import ConsentEngine

LifecycleHook = Callable[["ConsentEngine"], Awaitable[None] | None]

# Default settings
DEFAULT_NAME = "cookie-consent"
DEFAULT_MAX_AGE = 86400 * 365  # 1 year
DEFAULT_SHOW_DURATION = 0.32
DEFAULT_HIDE_DURATION = 0.16
DEFAULT_TRANSITION_DELAY = 0.16  # Banner hidden -> notice shown


async def _save_consented(engine: ConsentEngine, params: dict[str, Any]) -> None:
    await engine.save(consented=True)


async def _clear_record(engine: ConsentEngine, params: dict[str, Any]) -> None:
    await engine.clear()


async def save_live_choices(engine: ConsentEngine) -> None:
    """Default accept hook: persist what the visitor ticked."""
    await engine.save(choices=await engine.get_choices())


async def reload_page(engine: ConsentEngine) -> None:
    """Default reject hook: reload so rejected scripts are gone."""
    await engine.reload()


def default_capabilities() -> list[CapabilityDescriptor]:
    """A single functional capability that records whether consent was given."""
    return [
        CapabilityDescriptor(
            name="functional",
            checked=True,
            no_opt_out=True,
            on_accept=_save_consented,
            on_reject=_clear_record,
        )
    ]


@dataclass
class ConsentConfig:
    """Main configuration."""

    # Diagnostics
    debug: bool = False

    # Persistence
    name: str = DEFAULT_NAME
    cookie_path: str = "/"
    cookie_domain: str | None = None
    cookie_max_age: int = DEFAULT_MAX_AGE

    # Presentation
    banner: str = "#cookiebanner"
    notice: str = "#cookienotice"
    link_only: bool = False  # Notice is never toggled; a plain link reopens the banner
    show_duration: float = DEFAULT_SHOW_DURATION
    hide_duration: float = DEFAULT_HIDE_DURATION
    transition_delay: float = DEFAULT_TRANSITION_DELAY

    # Hooks
    on_reject_end: LifecycleHook | None = reload_page
    on_accept_end: LifecycleHook | None = save_live_choices

    capabilities: list[CapabilityDescriptor] = field(default_factory=default_capabilities)

    def __post_init__(self) -> None:
        if os.environ.get("CONSENTKIT_DEBUG", "").lower() in ("1", "true", "yes"):
            self.debug = True

    def with_overrides(self, **overrides: Any) -> ConsentConfig:
        """Return a copy with the given fields replaced, one by one.

        Raises:
            ConfigurationError: If a field name is unknown
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration fields: {unknown}")
        return replace(self, **overrides)

    @classmethod
    def load(cls, path: Path | None = None) -> ConsentConfig:
        """Load configuration from file.

        Capabilities declared in the file carry no hooks; attach them with
        dataclasses.replace() before building the engine.
        """
        if path is None:
            path = get_config_dir() / "config.json"

        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        # Warn about deprecated config keys
        deprecated = [k for k in ("linkOnly", "onRejectEnd", "onAcceptEnd") if k in data]
        if deprecated:
            warnings.warn(
                f"Config keys {deprecated} are deprecated. "
                "Use snake_case keys; hooks can only be set from Python.",
                DeprecationWarning,
                stacklevel=2,
            )

        config = cls(
            debug=data.get("debug", False),
            name=data.get("name", DEFAULT_NAME),
            cookie_path=data.get("cookie_path", "/"),
            cookie_domain=data.get("cookie_domain"),
            cookie_max_age=data.get("cookie_max_age", DEFAULT_MAX_AGE),
            banner=data.get("banner", "#cookiebanner"),
            notice=data.get("notice", "#cookienotice"),
            link_only=data.get("link_only", data.get("linkOnly", False)),
            show_duration=data.get("show_duration", DEFAULT_SHOW_DURATION),
            hide_duration=data.get("hide_duration", DEFAULT_HIDE_DURATION),
            transition_delay=data.get("transition_delay", DEFAULT_TRANSITION_DELAY),
        )
        if "capabilities" in data:
            config.capabilities = [CapabilityDescriptor.from_dict(c) for c in data["capabilities"]]
        return config

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file. Hooks are not serialized."""
        if path is None:
            path = get_config_dir() / "config.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "debug": self.debug,
            "name": self.name,
            "cookie_path": self.cookie_path,
            "cookie_domain": self.cookie_domain,
            "cookie_max_age": self.cookie_max_age,
            "banner": self.banner,
            "notice": self.notice,
            "link_only": self.link_only,
            "show_duration": self.show_duration,
            "hide_duration": self.hide_duration,
            "transition_delay": self.transition_delay,
            "capabilities": [c.to_dict() for c in self.capabilities],
        }

        with open(path, "w") as f:
            json.dump(data, f, indent=2)


def get_config_dir() -> Path:
    """Get config directory following platform conventions."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))

    return base / "consentkit"


def get_data_dir() -> Path:
    """Get data directory for the file-backed consent store."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "consentkit"

