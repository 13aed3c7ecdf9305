"""
Step effects: small, composable side effects run by the sequencer.

Supported effects (type field in script dictionaries):
- note:          append an entry to the decision log
- inspect:       log, direct attention to an element, report a finding on arrival
- set_field:     assign a dotted attribute path on the shared state, then log

Applications add their own types with ``register_effect``.

Effects run synchronously on the scheduler thread and must not block. All
interaction with the outside world goes through the StepContext handed to
``run``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Type

from .errors import EffectError

_EFFECT_TYPES: Dict[str, Type["BaseEffect"]] = {}


def register_effect(name: str) -> Callable[[Type["BaseEffect"]], Type["BaseEffect"]]:
    """Class decorator making an effect available to ``BaseEffect.from_dict``."""

    def decorator(cls: Type["BaseEffect"]) -> Type["BaseEffect"]:
        _EFFECT_TYPES[name] = cls
        return cls

    return decorator


class StepContext:
    """Handle passed to an effect while its step executes.

    The engine builds one per step. Callbacks created from it are bound to
    the run that produced them and turn into no-ops once that run is stopped.
    """

    def __init__(
        self,
        state: Any,
        step_index: int,
        log: Callable[[str, str, float], None],
        focus: Callable[[str, Optional[Callable[[], None]]], None],
        release: Callable[[], None],
        status: Callable[[str, str], None],
    ) -> None:
        self.state = state
        self.step_index = step_index
        self._log = log
        self._focus = focus
        self._release = release
        self._status = status

    def log(self, action: str, reasoning: str, confidence: float = 1.0) -> None:
        """Record a decision for this step."""
        self._log(action, reasoning, confidence)

    def focus(self, element_id: str, on_arrived: Optional[Callable[[], None]] = None) -> None:
        self._focus(element_id, on_arrived)

    def release(self) -> None:
        self._release()

    def status(self, message: str, level: str = "INFO") -> None:
        self._status(message, level)


@dataclass(frozen=True)
class BaseEffect:
    """Common interface for all effects."""

    def run(self, ctx: StepContext) -> None:  # pragma: no cover - abstract
        raise NotImplementedError

    def __call__(self, ctx: StepContext) -> None:
        self.run(ctx)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "BaseEffect":
        effect_type = str(data.get("type", "")).strip().lower()
        cls = _EFFECT_TYPES.get(effect_type)
        if cls is None:
            raise EffectError(f"Unknown effect type: {effect_type or '<missing>'}")
        return cls.parse(data)

    @classmethod
    def parse(cls, data: Dict[str, Any]) -> "BaseEffect":
        raise NotImplementedError


def parse_confidence(data: Dict[str, Any]) -> float:
    raw = data.get("confidence", 1.0)
    try:
        value = float(raw if raw is not None else 1.0)
    except (TypeError, ValueError):
        raise EffectError(f"Invalid confidence: {raw!r}")
    if not 0.0 <= value <= 1.0:
        raise EffectError(f"Confidence out of range [0, 1]: {value}")
    return value


@register_effect("note")
@dataclass(frozen=True)
class NoteEffect(BaseEffect):
    action: str
    reasoning: str
    confidence: float = 1.0

    def run(self, ctx: StepContext) -> None:
        ctx.log(self.action, self.reasoning, self.confidence)

    @classmethod
    def parse(cls, data: Dict[str, Any]) -> "NoteEffect":
        return cls(
            action=str(data.get("action", "")),
            reasoning=str(data.get("reasoning", "")),
            confidence=parse_confidence(data),
        )


@register_effect("inspect")
@dataclass(frozen=True)
class InspectEffect(BaseEffect):
    """Point the agent cursor at an element and report what was found there."""
    element_id: str
    action: str
    reasoning: str
    finding: str = ""
    confidence: float = 1.0

    def run(self, ctx: StepContext) -> None:
        ctx.log(self.action, self.reasoning, self.confidence)
        finding = self.finding

        def arrived() -> None:
            if finding:
                ctx.status(finding)

        ctx.focus(self.element_id, arrived)

    @classmethod
    def parse(cls, data: Dict[str, Any]) -> "InspectEffect":
        element_id = str(data.get("element", "") or "")
        if not element_id:
            raise EffectError("inspect: 'element' is required")
        return cls(
            element_id=element_id,
            action=str(data.get("action", "")),
            reasoning=str(data.get("reasoning", "")),
            finding=str(data.get("finding", "") or ""),
            confidence=parse_confidence(data),
        )


@register_effect("set_field")
@dataclass(frozen=True)
class SetFieldEffect(BaseEffect):
    """Assign ``value`` to a dotted attribute path such as ``em_code.modifiers``."""
    path: str
    value: Any
    action: str
    reasoning: str
    confidence: float = 1.0
    release_focus: bool = True

    def run(self, ctx: StepContext) -> None:
        setter = getattr(ctx.state, "set_field", None)
        if callable(setter):
            setter(self.path, self.value)
        else:
            assign_path(ctx.state, self.path, self.value)
        ctx.log(self.action, self.reasoning, self.confidence)
        if self.release_focus:
            ctx.release()

    @classmethod
    def parse(cls, data: Dict[str, Any]) -> "SetFieldEffect":
        path = str(data.get("path", "") or "")
        if not path:
            raise EffectError("set_field: 'path' is required")
        return cls(
            path=path,
            value=data.get("value"),
            action=str(data.get("action", "")),
            reasoning=str(data.get("reasoning", "")),
            confidence=parse_confidence(data),
            release_focus=bool(data.get("release", True)),
        )


def assign_path(target: Any, path: str, value: Any) -> None:
    """Set a dotted attribute path on ``target``; every segment must already exist."""
    parts = [p for p in path.split(".") if p]
    if not parts:
        raise EffectError("Empty field path")
    obj = target
    for part in parts[:-1]:
        if not hasattr(obj, part):
            raise EffectError(f"Unknown field path: {path}")
        obj = getattr(obj, part)
    if not hasattr(obj, parts[-1]):
        raise EffectError(f"Unknown field path: {path}")
    setattr(obj, parts[-1], value)
