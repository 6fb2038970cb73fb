"""
Exceptions raised by consentkit.
"""


class ConsentError(Exception):
    """Base class for consentkit errors."""

    pass


class ConfigurationError(ConsentError):
    """Configuration is incoherent (bad capabilities, unknown fields)."""

    pass


class UnknownChoiceError(ConsentError, KeyError):
    """No form input is bound to the requested capability name."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"No choice input bound to capability {self.name!r}"
