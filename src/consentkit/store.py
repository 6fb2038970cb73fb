"""
Persistence of the visitor's consent record.

The record lives in a single named entry of a key-value store (a cookie in
the browser). ChoiceStore is the only code that reads or writes that entry.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, unquote, urlparse

from .capabilities import Choice, ChoiceVector
from .config import get_data_dir

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = 86400 * 365  # 1 year


@dataclass(frozen=True)
class CookieScope:
    """Where a stored entry is visible."""

    path: str = "/"
    domain: str | None = None
    max_age: int = DEFAULT_MAX_AGE


# === Key-value collaborators ===


class KeyValueStore(ABC):
    """JSON-valued named entries with a path/domain scope."""

    @abstractmethod
    async def get(self, name: str) -> Any | None: ...

    @abstractmethod
    async def set(self, name: str, value: Any, scope: CookieScope) -> None: ...

    @abstractmethod
    async def remove(self, name: str, scope: CookieScope) -> None: ...

    @abstractmethod
    async def names(self) -> list[str]: ...


class MemoryKeyValueStore(KeyValueStore):
    """In-process store. Values are kept as JSON text, like a cookie."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, str] = {}
        for name, value in (initial or {}).items():
            self._data[name] = json.dumps(value)

    async def get(self, name: str) -> Any | None:
        raw = self._data.get(name)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    async def set(self, name: str, value: Any, scope: CookieScope) -> None:
        self._data[name] = json.dumps(value)

    async def remove(self, name: str, scope: CookieScope) -> None:
        self._data.pop(name, None)

    async def names(self) -> list[str]:
        return list(self._data)

    def put_raw(self, name: str, raw: str) -> None:
        """Store raw text as-is (used to simulate foreign or corrupt entries)."""
        self._data[name] = raw


def _get_store_path() -> Path:
    """Get the default path of the file-backed store."""
    return get_data_dir() / "consent.json"


class JsonFileKeyValueStore(KeyValueStore):
    """Entries kept in one JSON document on disk, with expiry timestamps."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path if path is not None else _get_store_path()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read consent store %s: %s", self.path, e)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring consent store %s: not a JSON object", self.path)
            return {}

        now = time.time()
        return {
            name: entry
            for name, entry in data.items()
            if isinstance(entry, dict) and entry.get("expires", now + 1) > now
        }

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.warning("Failed to write consent store %s: %s", self.path, e)

    async def get(self, name: str) -> Any | None:
        entry = self._read().get(name)
        if entry is None:
            return None
        return entry.get("value")

    async def set(self, name: str, value: Any, scope: CookieScope) -> None:
        data = self._read()
        data[name] = {
            "value": value,
            "path": scope.path,
            "domain": scope.domain,
            "expires": time.time() + scope.max_age,
        }
        self._write(data)

    async def remove(self, name: str, scope: CookieScope) -> None:
        data = self._read()
        if name in data:
            del data[name]
            self._write(data)

    async def names(self) -> list[str]:
        return list(self._read())


class PlaywrightCookieStore(KeyValueStore):
    """Cookies of a Playwright browser context, holding URL-quoted JSON."""

    def __init__(self, context: BrowserContext, url: str | None = None) -> None:
        """
        Initialize the store.

        Args:
            context: Browser context whose cookie jar is used
            url: Page URL, used to scope cookies when no domain is configured
        """
        self._context = context
        self._url = url

    async def _find(self, name: str) -> dict[str, Any] | None:
        cookies = await self._context.cookies(self._url) if self._url else await self._context.cookies()
        for cookie in cookies:
            if cookie.get("name") == name:
                return dict(cookie)
        return None

    async def get(self, name: str) -> Any | None:
        cookie = await self._find(name)
        if cookie is None:
            return None
        try:
            return json.loads(unquote(cookie.get("value", "")))
        except json.JSONDecodeError:
            logger.debug("Cookie %s does not hold JSON", name)
            return None

    async def set(self, name: str, value: Any, scope: CookieScope) -> None:
        cookie: dict[str, Any] = {
            "name": name,
            "value": quote(json.dumps(value, separators=(",", ":"))),
            "expires": time.time() + scope.max_age,
            "sameSite": "Lax",
        }
        domain = self._domain(scope)
        if domain is None:
            raise ValueError("PlaywrightCookieStore needs a url or a scope domain")
        cookie["domain"] = domain
        cookie["path"] = scope.path
        if not scope.domain and self._url:
            cookie["secure"] = urlparse(self._url).scheme == "https"

        await self._context.add_cookies([cookie])  # type: ignore[list-item]

    def _domain(self, scope: CookieScope) -> str | None:
        """Configured domain, else the host of the page URL."""
        if scope.domain:
            return scope.domain
        if self._url:
            return urlparse(self._url).hostname
        return None

    async def remove(self, name: str, scope: CookieScope) -> None:
        domain = self._domain(scope)
        if domain:
            await self._context.clear_cookies(name=name, domain=domain, path=scope.path)
        else:
            await self._context.clear_cookies(name=name)

    async def names(self) -> list[str]:
        cookies = await self._context.cookies(self._url) if self._url else await self._context.cookies()
        return [cookie["name"] for cookie in cookies if "name" in cookie]


# === Consent record ===


@dataclass(frozen=True)
class PersistedRecord:
    """Content of the stored consent entry. Either field may be absent."""

    choices: ChoiceVector | None = None
    consented: bool | None = None

    @classmethod
    def from_dict(cls, data: Any) -> PersistedRecord:
        """Parse the stored JSON form.

        Raises:
            TypeError: If the data does not have the record shape
        """
        if not isinstance(data, dict):
            raise TypeError(f"Record must be an object, got {type(data).__name__}")

        choices = None
        raw_choices = data.get("choices")
        if raw_choices is not None:
            if not isinstance(raw_choices, list):
                raise TypeError("Record choices must be a list")
            choices = [Choice.from_dict(item) for item in raw_choices]

        consented = data.get("consented")
        if consented is not None and not isinstance(consented, bool):
            raise TypeError("Record consented flag must be a boolean")

        return cls(choices=choices, consented=consented)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.choices is not None:
            data["choices"] = [choice.to_dict() for choice in self.choices]
        if self.consented is not None:
            data["consented"] = self.consented
        return data

    def merged(self, partial: PersistedRecord) -> PersistedRecord:
        """Shallow merge: fields present in partial replace ours wholesale."""
        return PersistedRecord(
            choices=list(partial.choices) if partial.choices is not None else self.choices,
            consented=partial.consented if partial.consented is not None else self.consented,
        )

    def value_of(self, name: str) -> bool | None:
        """Persisted value for a capability, or None when there is no entry."""
        for choice in self.choices or []:
            if choice.name == name:
                return choice.value
        return None


class ChoiceStore:
    """Load, merge-save and clear the single consent record."""

    def __init__(self, kv: KeyValueStore, name: str, scope: CookieScope | None = None) -> None:
        self._kv = kv
        self.name = name
        self.scope = scope or CookieScope()

    async def load(self) -> PersistedRecord | None:
        """Return the stored record, or None when absent or unreadable."""
        try:
            raw = await self._kv.get(self.name)
        except Exception as e:
            logger.warning("Failed to read consent record %s: %s", self.name, e)
            return None

        if not raw:
            return None

        try:
            return PersistedRecord.from_dict(raw)
        except (TypeError, ValueError) as e:
            logger.debug("Ignoring malformed consent record %s: %s", self.name, e)
            return None

    async def save(self, partial: PersistedRecord) -> PersistedRecord:
        """Merge partial over the stored record and persist the result."""
        current = await self.load() or PersistedRecord()
        merged = current.merged(partial)
        await self._kv.set(self.name, merged.to_dict(), self.scope)
        logger.debug("Saved consent record %s: %s", self.name, merged.to_dict())
        return merged

    async def clear(self) -> None:
        """Delete the record. No-op when there is none."""
        if self.name in await self._kv.names():
            await self._kv.remove(self.name, self.scope)
            logger.debug("Cleared consent record %s", self.name)
