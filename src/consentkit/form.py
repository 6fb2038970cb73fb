"""
Form binding: one boolean input per capability.

The engine reads the visitor's current intent from the form and writes
persisted intent back into it, without knowing how the form is rendered.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from .capabilities import Choice, ChoiceVector
from .exceptions import UnknownChoiceError

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

logger = logging.getLogger(__name__)

INPUT_SELECTOR = ".choice input"
NAME_PREFIX = "choice:"


class FormBinding(ABC):
    @abstractmethod
    async def get_choices(self) -> ChoiceVector:
        """Checked state of every bound input, in document order."""

    @abstractmethod
    async def set_choices(self, choices: ChoiceVector) -> None:
        """Write matching choices into the inputs; others are left untouched."""

    @abstractmethod
    async def get_choice(self, name: str) -> bool:
        """Checked state of a single input.

        Raises:
            UnknownChoiceError: If no input is bound to name
        """


class MemoryFormBinding(FormBinding):
    """In-process form, mainly for tests and headless use."""

    def __init__(self, inputs: Iterable[str | tuple[str, bool]]) -> None:
        self._inputs: dict[str, bool] = {}
        for item in inputs:
            if isinstance(item, str):
                self._inputs[item] = False
            else:
                name, checked = item
                self._inputs[name] = checked

    async def get_choices(self) -> ChoiceVector:
        return [Choice(name, checked) for name, checked in self._inputs.items()]

    async def set_choices(self, choices: ChoiceVector) -> None:
        for name in self._inputs:
            for choice in choices:
                if choice.name == name:
                    self._inputs[name] = choice.value
                    break

    async def get_choice(self, name: str) -> bool:
        if name not in self._inputs:
            raise UnknownChoiceError(name)
        return self._inputs[name]

    def check(self, name: str, value: bool = True) -> None:
        """Simulate the visitor toggling an input."""
        if name not in self._inputs:
            raise UnknownChoiceError(name)
        self._inputs[name] = value


class PlaywrightFormBinding(FormBinding):
    """Checkbox inputs named "choice:<capability>" inside the banner."""

    def __init__(
        self,
        page: Page,
        banner_selector: str,
        input_selector: str = INPUT_SELECTOR,
        prefix: str = NAME_PREFIX,
    ) -> None:
        self._page = page
        self._banner_selector = banner_selector
        self._input_selector = input_selector
        self._prefix = prefix

    def _inputs(self) -> Locator:
        return self._page.locator(self._banner_selector).locator(self._input_selector)

    async def get_choices(self) -> ChoiceVector:
        pairs: list[list[Any]] = await self._inputs().evaluate_all(
            "nodes => nodes.map(n => [n.getAttribute('name') || '', n.checked])"
        )
        choices = []
        for raw_name, checked in pairs:
            name = raw_name.replace(self._prefix, "", 1)
            if not name:
                logger.debug("Skipping unnamed choice input")
                continue
            choices.append(Choice(name, bool(checked)))
        return choices

    async def set_choices(self, choices: ChoiceVector) -> None:
        await self._inputs().evaluate_all(
            """
            (nodes, [prefix, values]) => nodes.forEach(n => {
                const name = (n.getAttribute('name') || '').replace(prefix, '');
                if (Object.prototype.hasOwnProperty.call(values, name)) {
                    n.checked = values[name];
                }
            })
            """,
            [self._prefix, _first_values(choices)],
        )

    async def get_choice(self, name: str) -> bool:
        checked = await self._inputs().evaluate_all(
            """
            (nodes, full) => {
                const node = nodes.find(n => n.getAttribute('name') === full);
                return node ? node.checked : null;
            }
            """,
            f"{self._prefix}{name}",
        )
        if checked is None:
            raise UnknownChoiceError(name)
        return bool(checked)


def _first_values(choices: ChoiceVector) -> dict[str, bool]:
    """Map names to values; the first choice for a name wins."""
    values: dict[str, bool] = {}
    for choice in choices:
        values.setdefault(choice.name, choice.value)
    return values
