"""
Consent engine.

Reconciles the persisted consent record with the live form, detects which
capabilities changed since the last save, and dispatches capability
callbacks through an ordered per-action queue.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from enum import Enum
from typing import Any

from .capabilities import CapabilityDescriptor, CapabilityRegistry, Choice, ChoiceVector
from .config import ConsentConfig
from .events import EventKind, EventQueue
from .exceptions import ConfigurationError
from .form import FormBinding
from .presentation import Element, Presenter
from .store import ChoiceStore, CookieScope, KeyValueStore, PersistedRecord

logger = logging.getLogger(__name__)


class EngineState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DEGRADED = "degraded"


class ConsentEngine:
    """Main engine for visitor consent handling."""

    def __init__(
        self,
        config: ConsentConfig | None = None,
        *,
        form: FormBinding,
        presenter: Presenter,
        kv: KeyValueStore,
    ) -> None:
        """
        Create the engine. Nothing happens until initialize() is awaited.

        Args:
            config: Engine configuration; defaults apply field by field
            form: Binding to the choice inputs
            presenter: Banner/notice presentation
            kv: Key-value store holding the consent record
        """
        self.config = config or ConsentConfig()
        self.form = form
        self.presenter = presenter
        self.kv = kv
        self.scope = CookieScope(
            path=self.config.cookie_path,
            domain=self.config.cookie_domain,
            max_age=self.config.cookie_max_age,
        )
        self.store = ChoiceStore(kv, self.config.name, self.scope)
        self.state = EngineState.UNINITIALIZED
        self.registry: CapabilityRegistry | None = None

        self._busy = False
        self._transition: asyncio.Task[None] | None = None

    # === Construction ===

    async def initialize(self) -> EngineState:
        """Validate, bind controls, restore persisted consent, show the UI.

        Configuration faults are logged and leave the engine DEGRADED;
        they are never raised. Calling this again is a no-op.
        """
        if self.state is not EngineState.UNINITIALIZED:
            return self.state

        try:
            self.registry = CapabilityRegistry(self.config.capabilities)
        except ConfigurationError as e:
            logger.error("Invalid capabilities: %s", e)
            self.state = EngineState.DEGRADED
            return self.state

        missing = await self.presenter.missing_elements()
        if missing:
            logger.error("Can not find required elements: %s", ", ".join(missing))
            self.state = EngineState.DEGRADED
            return self.state

        await self.presenter.bind(self.reject, self.accept, self.reopen)
        self.state = EngineState.READY

        record = await self.store.load()

        if record is not None and record.choices is not None:
            await self.set_choices(record.choices)
            await self._collect_startup(record.choices).run()
        else:
            await self.init_fields()

        if record is not None and record.consented:
            await self.show_notice()
        else:
            await self.show_banner()

        return self.state

    @property
    def ready(self) -> bool:
        return self.state is EngineState.READY

    # === User actions ===

    async def reject(self) -> None:
        """Reset to defaults and reject every capability."""
        if not self._begin("reject"):
            return

        started = time.perf_counter()
        try:
            choices = await self.init_fields()
            queue = await self._collect_reject(choices)
            await queue.run()
            await self.set_choices(choices)
            await self.save(choices=choices)
            await self._call_hook(self.config.on_reject_end)
        finally:
            self._end("reject", started)

        await self._hide_banner_then_notice()

    async def accept(self) -> None:
        """Accept or reject each capability according to the live form."""
        if not self._begin("accept"):
            return

        started = time.perf_counter()
        try:
            choices = await self.get_choices()
            queue = await self._collect_accept(choices)
            await queue.run()
            await self._call_hook(self.config.on_accept_end)
        finally:
            self._end("accept", started)

        await self._hide_banner_then_notice()

    async def reopen(self) -> None:
        """Bring the banner back from the notice."""
        if not self.ready:
            return
        self._cancel_transition()
        await self.hide_notice()
        await self.show_banner()

    def _begin(self, action: str) -> bool:
        if not self.ready:
            logger.debug("Ignoring %s: engine is %s", action, self.state.value)
            return False
        if self._busy:
            logger.debug("Ignoring %s: another action is in progress", action)
            return False
        self._busy = True
        self._cancel_transition()
        return True

    def _end(self, action: str, started: float) -> None:
        self._busy = False
        if self.config.debug:
            logger.info("%s took %.1fms", action, (time.perf_counter() - started) * 1000)

    async def _call_hook(self, hook: Any) -> None:
        if hook is None:
            return
        result = hook(self)
        if inspect.isawaitable(result):
            await result

    # === Queue assembly ===

    def _collect_startup(self, choices: ChoiceVector) -> EventQueue:
        queue = EventQueue()
        for choice in choices:
            capability = self._capability_for(choice.name)
            kind = EventKind.ACCEPT if choice.value else EventKind.REJECT
            self._enqueue(queue, capability, kind)
        return queue

    async def _collect_reject(self, choices: ChoiceVector) -> EventQueue:
        queue = EventQueue()
        previous = await self.store.load()
        for choice in choices:
            capability = self._capability_for(choice.name)
            self._enqueue_value_events(queue, capability, choice, previous)
            self._enqueue(queue, capability, EventKind.REJECT)
        return queue

    async def _collect_accept(self, choices: ChoiceVector) -> EventQueue:
        queue = EventQueue()
        previous = await self.store.load()
        for choice in choices:
            capability = self._capability_for(choice.name)
            self._enqueue_value_events(queue, capability, choice, previous)
            kind = EventKind.ACCEPT if choice.value else EventKind.REJECT
            self._enqueue(queue, capability, kind)
        return queue

    def _enqueue_value_events(
        self,
        queue: EventQueue,
        capability: CapabilityDescriptor | None,
        choice: Choice,
        previous: PersistedRecord | None,
    ) -> None:
        """UPDATE always; VALUE_CHANGE when the last saved value differs.

        A capability with no saved entry has nothing to change from.
        """
        params = {"choice": choice.value}
        self._enqueue(queue, capability, EventKind.UPDATE, params)

        if previous is None or previous.choices is None:
            return
        saved = previous.value_of(choice.name)
        if saved is not None and saved != choice.value:
            self._enqueue(queue, capability, EventKind.VALUE_CHANGE, params)

    def _enqueue(
        self,
        queue: EventQueue,
        capability: CapabilityDescriptor | None,
        kind: EventKind,
        params: dict[str, Any] | None = None,
    ) -> None:
        if capability is None:
            return

        handler = capability.handler_for(kind)
        if handler is None:
            if self.config.debug:
                logger.warning("Capability %s has no %s handler", capability.name, kind.slot)
            return

        args = dict(params or {})
        queue.enqueue(kind, lambda: handler(self, args), label=f"{capability.name}.{kind.slot}")
        if self.config.debug:
            logger.info("Added %s.%s to queue", capability.name, kind.slot)

    def _capability_for(self, name: str) -> CapabilityDescriptor | None:
        capability = self.get_capability(name)
        if capability is None and self.config.debug:
            logger.warning("Unknown capability: %s", name)
        return capability

    # === Helpers available to callbacks ===

    def get_capability(self, name: str) -> CapabilityDescriptor | None:
        if self.registry is None:
            return None
        return self.registry.get(name)

    async def init_fields(self) -> ChoiceVector:
        """Reset the form to descriptor defaults and return that vector."""
        choices = self.registry.defaults() if self.registry is not None else []
        await self.set_choices(choices)
        return choices

    async def get_choices(self) -> ChoiceVector:
        return await self.form.get_choices()

    async def set_choices(self, choices: ChoiceVector) -> None:
        await self.form.set_choices(choices)

    async def get_choice(self, name: str) -> bool:
        return await self.form.get_choice(name)

    async def load(self) -> PersistedRecord | None:
        return await self.store.load()

    async def save(
        self,
        *,
        choices: ChoiceVector | None = None,
        consented: bool | None = None,
    ) -> PersistedRecord:
        """Merge the given fields into the persisted record."""
        return await self.store.save(PersistedRecord(choices=choices, consented=consented))

    async def clear(self) -> None:
        await self.store.clear()

    async def purge(self, prefix: str, scope: CookieScope | None = None) -> list[str]:
        """Remove stored entries (e.g. tracker cookies) whose name starts with prefix.

        The engine's own record is never purged.
        """
        removed = []
        for name in await self.kv.names():
            if name.startswith(prefix) and name != self.store.name:
                await self.kv.remove(name, scope or self.scope)
                removed.append(name)
        if removed:
            logger.debug("Purged entries: %s", removed)
        return removed

    async def reload(self) -> None:
        await self.presenter.reload()

    # === Visibility ===

    async def show_banner(self) -> None:
        await self.presenter.show(Element.BANNER, self.config.show_duration)

    async def hide_banner(self) -> None:
        await self.presenter.hide(Element.BANNER, self.config.hide_duration)

    async def show_notice(self) -> None:
        if not self.config.link_only:
            await self.presenter.show(Element.NOTICE, self.config.show_duration)

    async def hide_notice(self) -> None:
        if not self.config.link_only:
            await self.presenter.hide(Element.NOTICE, self.config.hide_duration)

    async def _hide_banner_then_notice(self) -> None:
        # Schedule first so a reopen during the fade can cancel the notice
        self._transition = asyncio.create_task(
            self._show_notice_after(self.config.transition_delay)
        )
        await self.hide_banner()

    async def _show_notice_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.show_notice()

    def _cancel_transition(self) -> None:
        if self._transition is not None and not self._transition.done():
            self._transition.cancel()
        self._transition = None

    async def wait_transitions(self) -> None:
        """Wait until a pending banner-to-notice transition has finished."""
        task = self._transition
        if task is not None:
            await asyncio.wait({task})
