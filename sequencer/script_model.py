"""
Agent script data model, registry and dictionary parser.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .effects import BaseEffect, StepContext
from .errors import EffectError, ScriptFormatError, UnknownScriptError


@dataclass(frozen=True)
class ScriptStep:
    """One timed step: run ``effect``, then wait ``dwell_seconds``."""
    effect: Callable[[StepContext], None]
    dwell_seconds: float = 0.0
    label: Optional[str] = None

    def __post_init__(self) -> None:
        if self.dwell_seconds < 0:
            raise ValueError("Dwell duration cannot be negative")

    def run(self, ctx: StepContext) -> None:
        self.effect(ctx)

    def describe(self) -> str:
        if self.label:
            return self.label
        action = getattr(self.effect, "action", None)
        if action:
            return str(action)
        return self.effect.__class__.__name__

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ScriptStep":
        effect_data = data.get("effect")
        if not isinstance(effect_data, dict):
            raise ScriptFormatError("Step requires an 'effect' object")
        try:
            effect = BaseEffect.from_dict(effect_data)
        except EffectError as exc:
            raise ScriptFormatError(str(exc)) from exc
        # Accept milliseconds (as authored in the demo fixtures) or seconds
        if "dwell_ms" in data:
            raw, scale = data.get("dwell_ms"), 1000.0
        else:
            raw, scale = data.get("dwell", 0.0), 1.0
        try:
            dwell = float(raw or 0.0) / scale
        except (TypeError, ValueError):
            raise ScriptFormatError(f"Invalid dwell value: {raw!r}")
        if dwell < 0:
            raise ScriptFormatError("Dwell duration cannot be negative")
        label = data.get("label")
        return ScriptStep(
            effect=effect,
            dwell_seconds=dwell,
            label=str(label) if label not in (None, "") else None,
        )


@dataclass(frozen=True)
class Script:
    """An ordered, immutable list of steps identified by ``key``."""
    key: str
    steps: Tuple[ScriptStep, ...] = ()
    title: str = ""

    def __post_init__(self) -> None:
        # Freeze lists handed in by callers
        object.__setattr__(self, "steps", tuple(self.steps))

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[ScriptStep]:
        return iter(self.steps)

    def __getitem__(self, index: int) -> ScriptStep:
        return self.steps[index]

    @property
    def total_dwell(self) -> float:
        return sum(step.dwell_seconds for step in self.steps)

    @staticmethod
    def from_dict(key: str, data: Dict[str, Any]) -> "Script":
        steps_data = data.get("steps", []) or []
        if not isinstance(steps_data, list):
            raise ScriptFormatError(f"Script '{key}': 'steps' must be a list")
        steps: List[ScriptStep] = []
        for index, raw in enumerate(steps_data):
            if not isinstance(raw, dict):
                raise ScriptFormatError(f"Script '{key}': step {index} must be an object")
            try:
                steps.append(ScriptStep.from_dict(raw))
            except ScriptFormatError as exc:
                raise ScriptFormatError(f"Script '{key}', step {index}: {exc}") from exc
        return Script(key=key, steps=tuple(steps), title=str(data.get("title", "") or key))


@dataclass
class ScriptRegistry:
    """
    Named scripts available to the sequencer.

    The registry is handed to the engine at construction; a run keeps the
    Script object resolved at start, so later registrations never affect it.
    """
    _scripts: Dict[str, Script] = field(default_factory=dict)

    def register(self, script: Script) -> None:
        self._scripts[script.key] = script

    def get(self, key: str) -> Script:
        try:
            return self._scripts[key]
        except KeyError:
            raise UnknownScriptError(key) from None

    def keys(self) -> List[str]:
        return list(self._scripts)

    def __contains__(self, key: object) -> bool:
        return key in self._scripts

    def __len__(self) -> int:
        return len(self._scripts)

    def __iter__(self) -> Iterator[Script]:
        return iter(self._scripts.values())

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ScriptRegistry":
        """Parse ``{"scripts": {key: {"title": ..., "steps": [...]}}}``."""
        scripts_data = data.get("scripts", {}) or {}
        if not isinstance(scripts_data, dict):
            raise ScriptFormatError("'scripts' must be an object keyed by script name")
        registry = ScriptRegistry()
        for key, raw in scripts_data.items():
            if not isinstance(raw, dict):
                raise ScriptFormatError(f"Script '{key}' must be an object")
            registry.register(Script.from_dict(str(key), raw))
        return registry
