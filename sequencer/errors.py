"""Exceptions raised by the sequencer package."""


class SequencerError(Exception):
    """Base class for sequencer errors."""


class UnknownScriptError(SequencerError, KeyError):
    """Raised when a script key is not registered."""

    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"No such script: {self.key!r}"


class ScriptFormatError(SequencerError):
    """Raised when a script definition cannot be parsed."""


class EffectError(SequencerError):
    """Raised for unknown effect types or effects that cannot be applied."""
