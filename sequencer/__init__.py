"""
Sequencer package: plays scripted agent steps against a live application.

Key parts
---------
- script_model:  ScriptStep / Script / ScriptRegistry and their dict parser
- effects:       Small effect classes (note, inspect, set_field, ...) and StepContext
- engine:        SequencerEngine with start / pause / resume / stop
- scheduling:    Timer facilities (Tk ``after`` or a ``sched`` based loop)
- choreography:  Contract for directing attention to UI elements
- decision_log:  Ordered record of the agent's decisions
"""

from .choreography import Choreographer, TimedChoreographer
from .decision_log import DecisionEntry, DecisionLog
from .effects import BaseEffect, StepContext, register_effect
from .engine import SequencerEngine
from .errors import EffectError, ScriptFormatError, SequencerError, UnknownScriptError
from .scheduling import LoopScheduler, Scheduler, TkScheduler
from .script_model import Script, ScriptRegistry, ScriptStep
from .state import SequencerState, SequencerStatus

__all__ = [
    "BaseEffect",
    "Choreographer",
    "DecisionEntry",
    "DecisionLog",
    "EffectError",
    "LoopScheduler",
    "Scheduler",
    "Script",
    "ScriptFormatError",
    "ScriptRegistry",
    "ScriptStep",
    "SequencerEngine",
    "SequencerError",
    "SequencerState",
    "SequencerStatus",
    "StepContext",
    "TimedChoreographer",
    "TkScheduler",
    "UnknownScriptError",
    "register_effect",
]
