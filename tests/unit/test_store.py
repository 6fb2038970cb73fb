"""Unit tests for consent record persistence."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import quote, unquote

import pytest

from consentkit.capabilities import Choice
from consentkit.store import (
    ChoiceStore,
    CookieScope,
    JsonFileKeyValueStore,
    MemoryKeyValueStore,
    PersistedRecord,
    PlaywrightCookieStore,
)


class TestPersistedRecord:
    """Tests for the PersistedRecord dataclass."""

    def test_round_trip_omits_absent_fields(self) -> None:
        record = PersistedRecord(consented=True)

        assert record.to_dict() == {"consented": True}
        assert PersistedRecord.from_dict({"consented": True}) == record

    def test_merge_is_shallow(self) -> None:
        """Present fields replace wholesale; absent fields keep old values."""
        old = PersistedRecord(choices=[Choice("a", True), Choice("b", True)], consented=True)

        merged = old.merged(PersistedRecord(choices=[Choice("a", False)]))

        assert merged.choices == [Choice("a", False)]
        assert merged.consented is True

    def test_value_of(self) -> None:
        record = PersistedRecord(choices=[Choice("a", False)])

        assert record.value_of("a") is False
        assert record.value_of("b") is None
        assert PersistedRecord().value_of("a") is None

    @pytest.mark.parametrize(
        "data",
        [
            "choices",
            {"choices": "a"},
            {"choices": [{"name": "a"}]},
            {"consented": "yes"},
        ],
    )
    def test_from_dict_malformed(self, data: Any) -> None:
        with pytest.raises(TypeError):
            PersistedRecord.from_dict(data)


class TestChoiceStore:
    """Tests for the ChoiceStore class."""

    @pytest.mark.asyncio
    async def test_load_absent(self) -> None:
        store = ChoiceStore(MemoryKeyValueStore(), "cookie-consent")

        assert await store.load() is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        ["not json", "[1, 2]", '{"choices": 5}', '{"choices": [{"value": true}]}'],
    )
    async def test_load_malformed_is_absent(self, raw: str) -> None:
        """Corrupt entries read as no prior consent."""
        kv = MemoryKeyValueStore()
        kv.put_raw("cookie-consent", raw)

        assert await ChoiceStore(kv, "cookie-consent").load() is None

    @pytest.mark.asyncio
    async def test_load_never_raises(self) -> None:
        """A failing collaborator reads as absent."""
        kv = MagicMock()
        kv.get = AsyncMock(side_effect=OSError("disk gone"))

        assert await ChoiceStore(kv, "cookie-consent").load() is None

    @pytest.mark.asyncio
    async def test_save_merges(self) -> None:
        kv = MemoryKeyValueStore()
        store = ChoiceStore(kv, "cookie-consent")

        await store.save(PersistedRecord(consented=True))
        await store.save(PersistedRecord(choices=[Choice("ads", True)]))

        assert await kv.get("cookie-consent") == {
            "choices": [{"name": "ads", "value": True}],
            "consented": True,
        }

        await store.save(PersistedRecord(choices=[Choice("stats", False)]))
        record = await store.load()

        assert record is not None
        assert record.choices == [Choice("stats", False)]
        assert record.consented is True

    @pytest.mark.asyncio
    async def test_clear(self) -> None:
        kv = MemoryKeyValueStore({"cookie-consent": {"consented": True}, "other": 1})
        store = ChoiceStore(kv, "cookie-consent")

        await store.clear()
        await store.clear()  # already absent

        assert await store.load() is None
        assert await kv.names() == ["other"]

    @pytest.mark.asyncio
    async def test_clear_removes_corrupt_entry(self) -> None:
        kv = MemoryKeyValueStore()
        kv.put_raw("cookie-consent", "{{{")

        await ChoiceStore(kv, "cookie-consent").clear()

        assert await kv.names() == []


class TestJsonFileKeyValueStore:
    """Tests for the file-backed store."""

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "consent.json"

        await JsonFileKeyValueStore(path).set("cookie-consent", {"consented": True}, CookieScope())

        assert await JsonFileKeyValueStore(path).get("cookie-consent") == {"consented": True}

    @pytest.mark.asyncio
    async def test_default_path(self, tmp_path: Path) -> None:
        with patch(
            "consentkit.store._get_store_path",
            return_value=tmp_path / "data" / "consent.json",
        ):
            kv = JsonFileKeyValueStore()
            await kv.set("a", 1, CookieScope())

        assert (tmp_path / "data" / "consent.json").exists()

    @pytest.mark.asyncio
    async def test_expired_entries_are_absent(self, tmp_path: Path) -> None:
        kv = JsonFileKeyValueStore(tmp_path / "consent.json")

        await kv.set("old", {"consented": True}, CookieScope(max_age=-10))

        assert await kv.get("old") is None
        assert await kv.names() == []

    @pytest.mark.asyncio
    async def test_corrupt_file_reads_empty(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "consent.json"
        path.write_text("{not json")

        with caplog.at_level(logging.WARNING, logger="consentkit.store"):
            assert await JsonFileKeyValueStore(path).get("cookie-consent") is None

        assert "Failed to read consent store" in caplog.text

    @pytest.mark.asyncio
    async def test_remove(self, tmp_path: Path) -> None:
        kv = JsonFileKeyValueStore(tmp_path / "consent.json")
        await kv.set("a", 1, CookieScope())
        await kv.set("b", 2, CookieScope())

        await kv.remove("a", CookieScope())
        await kv.remove("missing", CookieScope())

        assert await kv.names() == ["b"]
        stored = json.loads((tmp_path / "consent.json").read_text())
        assert list(stored) == ["b"]


class TestPlaywrightCookieStore:
    """Tests for the cookie-backed store with a mocked browser context."""

    @pytest.fixture
    def context(self) -> MagicMock:
        context = MagicMock()
        context.cookies = AsyncMock(
            return_value=[
                {"name": "_ga", "value": "GA1.2.3"},
                {
                    "name": "cookie-consent",
                    "value": quote(json.dumps({"consented": True})),
                },
            ]
        )
        context.add_cookies = AsyncMock()
        context.clear_cookies = AsyncMock()
        return context

    @pytest.mark.asyncio
    async def test_get(self, context: MagicMock) -> None:
        kv = PlaywrightCookieStore(context, url="https://example.com/")

        assert await kv.get("cookie-consent") == {"consented": True}
        assert await kv.get("_ga") is None
        assert await kv.get("missing") is None
        context.cookies.assert_called_with("https://example.com/")

    @pytest.mark.asyncio
    async def test_set_with_url(self, context: MagicMock) -> None:
        kv = PlaywrightCookieStore(context, url="https://example.com/")

        await kv.set("cookie-consent", {"consented": True}, CookieScope())

        (cookies,), _ = context.add_cookies.call_args
        assert cookies[0]["name"] == "cookie-consent"
        assert cookies[0]["domain"] == "example.com"
        assert cookies[0]["path"] == "/"
        assert cookies[0]["secure"] is True
        assert "url" not in cookies[0]
        assert json.loads(unquote(cookies[0]["value"])) == {"consented": True}

    @pytest.mark.asyncio
    async def test_set_with_domain(self, context: MagicMock) -> None:
        kv = PlaywrightCookieStore(context)

        await kv.set("cookie-consent", {}, CookieScope(path="/app", domain="example.com"))

        (cookies,), _ = context.add_cookies.call_args
        assert cookies[0]["domain"] == "example.com"
        assert cookies[0]["path"] == "/app"
        assert "url" not in cookies[0]

    @pytest.mark.asyncio
    async def test_set_without_scope_fails(self, context: MagicMock) -> None:
        kv = PlaywrightCookieStore(context)

        with pytest.raises(ValueError):
            await kv.set("cookie-consent", {}, CookieScope())

    @pytest.mark.asyncio
    async def test_remove_and_names(self, context: MagicMock) -> None:
        kv = PlaywrightCookieStore(context, url="https://example.com/")

        await kv.remove("_ga", CookieScope())

        context.clear_cookies.assert_called_once_with(name="_ga", domain="example.com", path="/")
        assert await kv.names() == ["_ga", "cookie-consent"]

    @pytest.mark.asyncio
    async def test_remove_stays_on_page_host(self, context: MagicMock) -> None:
        """Removing by name never touches same-named cookies of other sites."""
        kv = PlaywrightCookieStore(context, url="https://shop.example.com/cart")

        await kv.remove("_ga", CookieScope(path="/"))

        context.clear_cookies.assert_called_once_with(
            name="_ga", domain="shop.example.com", path="/"
        )

    @pytest.mark.asyncio
    async def test_purge_scoped_to_page_host(self, context: MagicMock) -> None:
        from consentkit.config import ConsentConfig
        from consentkit.engine import ConsentEngine
        from consentkit.form import MemoryFormBinding
        from consentkit.presentation import MemoryPresenter

        kv = PlaywrightCookieStore(context, url="https://example.com/")
        engine = ConsentEngine(
            ConsentConfig(), form=MemoryFormBinding([]), presenter=MemoryPresenter(), kv=kv
        )

        assert await engine.purge("_g") == ["_ga"]

        context.clear_cookies.assert_called_once_with(name="_ga", domain="example.com", path="/")
