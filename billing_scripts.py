"""
Agent scripts of the billing demo.

Test Case 1 (telehealth): a telehealth E/M visit is missing modifier 95.
Test Case 2 (obesity):    obesity is coded as the primary diagnosis.

The steps themselves live in ``test_cases/scripts.json``; this module adds
the billing-specific effect type and the element ids the form view exposes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from case_catalog import CaseCatalog
from sequencer.effects import (
    BaseEffect,
    StepContext,
    parse_confidence,
    register_effect,
)
from sequencer.errors import EffectError
from sequencer.script_model import ScriptRegistry

# Element ids shared with the GUI form view
DIAGNOSIS_TEXTAREA = "diagnosis-textarea"
EM_MODIFIERS_INPUT = "em-modifiers-input"
ICD_CODES_SECTION = "icd-codes-section"


@register_effect("reorder_diagnoses")
@dataclass(frozen=True)
class ReorderDiagnosesEffect(BaseEffect):
    """Put the listed ICD-10 codes at the top of the claim, in order."""
    order: Tuple[str, ...]
    action: str
    reasoning: str
    confidence: float = 1.0
    release_focus: bool = True

    def run(self, ctx: StepContext) -> None:
        reorder = getattr(ctx.state, "reorder_icd_codes", None)
        if not callable(reorder):
            raise EffectError("reorder_diagnoses: state has no diagnosis codes")
        reorder(self.order)
        ctx.log(self.action, self.reasoning, self.confidence)
        if self.release_focus:
            ctx.release()

    @classmethod
    def parse(cls, data: Dict[str, Any]) -> "ReorderDiagnosesEffect":
        order = data.get("order") or []
        if not isinstance(order, list) or not order:
            raise EffectError("reorder_diagnoses: 'order' must be a non-empty list")
        return cls(
            order=tuple(str(code) for code in order),
            action=str(data.get("action", "")),
            reasoning=str(data.get("reasoning", "")),
            confidence=parse_confidence(data),
            release_focus=bool(data.get("release", True)),
        )


def build_default_registry(catalog: Optional[CaseCatalog] = None) -> ScriptRegistry:
    """Load the demo scripts from the catalog's ``scripts.json``.

    Raises:
        CatalogError: if the file is missing or a script is malformed
    """
    return (catalog or CaseCatalog()).load_scripts()
