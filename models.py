"""
Domain models for the Billing Agent demo.
Each class follows the Single Responsibility Principle (SRP).
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from sequencer.choreography import TimedChoreographer
from sequencer.effects import assign_path
from sequencer.errors import EffectError

MAX_ARRIVAL_DELAY_MS = int(TimedChoreographer.MAX_ARRIVAL_DELAY * 1000)

# Fields of a misc service line the form view may edit
MISC_SERVICE_FIELDS = ("code", "description", "modifiers", "units", "bill_checked")

DEFAULT_DIAGNOSIS_TEXT = (
    "Patient seen in office today for diabetes. Diabetes is well controlled. "
    "Abnormal findings/complications include INSERT TEXT HERE. Patient advised on "
    "medication compliance and to maintain blood sugar logbook before and after meals "
    "to bring back for next visit. Advised on diet and regular exercise. Patient needs "
    "to perform proper and frequent foot care and needs to see ophthalmologist yearly. "
    "Other Instructions: INSERT TEXT HERE. Further diagnostic testing per orders below. "
    "Patient to follow up as directed."
)


@dataclass
class IcdCode:
    """An ICD-10 diagnosis code."""
    code: str
    description: str = ""

    def __str__(self) -> str:
        return f"{self.code} {self.description}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "description": self.description}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "IcdCode":
        return IcdCode(
            code=str(data.get("code", "") or ""),
            description=str(data.get("description", "") or ""),
        )


@dataclass
class EmCode:
    """Evaluation & management service line."""
    code: str = ""
    description: str = ""
    modifiers: str = ""
    units: str = "1"
    icd10: str = ""
    bill_checked: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "description": self.description,
            "modifiers": self.modifiers,
            "units": self.units,
            "icd10": self.icd10,
            "billChecked": self.bill_checked,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "EmCode":
        # The fixtures treat a missing billChecked flag as checked
        return EmCode(
            code=str(data.get("code", "") or ""),
            description=str(data.get("description", "") or ""),
            modifiers=str(data.get("modifiers", "") or ""),
            units=str(data.get("units", "1") or "1"),
            icd10=str(data.get("icd10", "") or ""),
            bill_checked=data.get("billChecked") is not False,
        )


@dataclass
class MiscService:
    """Additional billable service with its own diagnosis pointers."""
    code: str
    description: str = ""
    modifiers: str = ""
    units: str = "1"
    icd10_codes: List[IcdCode] = field(default_factory=list)
    bill_checked: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "description": self.description,
            "modifiers": self.modifiers,
            "units": self.units,
            "icd10Codes": [c.to_dict() for c in self.icd10_codes],
            "billChecked": self.bill_checked,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "MiscService":
        codes_data = data.get("icd10Codes", []) or []
        return MiscService(
            code=str(data.get("code", "") or ""),
            description=str(data.get("description", "") or ""),
            modifiers=str(data.get("modifiers", "") or ""),
            units=str(data.get("units", "1") or "1"),
            icd10_codes=[IcdCode.from_dict(c) for c in codes_data if isinstance(c, dict)],
            bill_checked=data.get("billChecked") is not False,
        )


@dataclass
class BillingForm:
    """
    The claim being reviewed: shared state the agent scripts act upon.

    Mutations made through the methods below notify subscribers so that
    views can redraw.
    """
    icd_codes: List[IcdCode] = field(default_factory=list)
    em_code: EmCode = field(default_factory=EmCode)
    misc_services: List[MiscService] = field(default_factory=list)
    notes: str = ""
    diagnosis_text: str = ""
    _listeners: List[Callable[[], None]] = field(
        default_factory=list, repr=False, compare=False
    )

    @staticmethod
    def default() -> "BillingForm":
        """The form shown before any test case is loaded."""
        return BillingForm(
            icd_codes=[
                IcdCode("E11.9", "Type 2 diabetes mellitus without complications"),
                IcdCode("E78.5", "Hyperlipidemia, unspecified"),
                IcdCode("I10", "Essential (primary) hypertension"),
            ],
            em_code=EmCode(
                code="99214",
                description="EST PT LEVEL 4 OF 5",
                modifiers="",
                units="1",
                icd10="E11.9\nE78.5\nI10",
            ),
            diagnosis_text=DEFAULT_DIAGNOSIS_TEXT,
        )

    @property
    def primary_diagnosis(self) -> Optional[IcdCode]:
        return self.icd_codes[0] if self.icd_codes else None

    def diagnosis_codes(self) -> List[str]:
        return [c.code for c in self.icd_codes]

    def subscribe(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def set_field(self, path: str, value: Any) -> None:
        """Assign a dotted attribute path, e.g. ``em_code.modifiers``."""
        if path.split(".", 1)[0].startswith("_"):
            raise EffectError(f"Field is not writable: {path}")
        assign_path(self, path, value)
        self._notify()

    def reorder_icd_codes(self, order: Sequence[str]) -> bool:
        """
        Move the listed codes to the front, in the given order.

        Codes that are not on the form are skipped; unlisted codes keep their
        relative order behind the listed ones.

        Returns:
            bool: True if the order changed
        """
        by_code = {c.code: c for c in self.icd_codes}
        front = [by_code[code] for code in dict.fromkeys(order) if code in by_code]
        rest = [c for c in self.icd_codes if c.code not in {f.code for f in front}]
        reordered = front + rest
        changed = [c.code for c in reordered] != self.diagnosis_codes()
        self.icd_codes = reordered
        self._notify()
        return changed

    def add_icd_code(self, code: str, description: str) -> IcdCode:
        """Append a diagnosis; both the code and its description are required."""
        icd = self._new_icd_code(code, description)
        self.icd_codes.append(icd)
        self._notify()
        return icd

    def remove_icd_code(self, index: int) -> None:
        del self.icd_codes[index]
        self._notify()

    def add_misc_service(self, code: str) -> MiscService:
        """Append a billable service with one unit, checked for billing."""
        code = code.strip()
        if not code:
            raise ValueError("Service code is required")
        service = MiscService(code=code)
        self.misc_services.append(service)
        self._notify()
        return service

    def remove_misc_service(self, index: int) -> None:
        del self.misc_services[index]
        self._notify()

    def update_misc_service(self, index: int, field_name: str, value: Any) -> None:
        if field_name not in MISC_SERVICE_FIELDS:
            raise ValueError(f"Misc service field is not editable: {field_name}")
        setattr(self.misc_services[index], field_name, value)
        self._notify()

    def add_icd_to_misc_service(self, service_index: int, code: str, description: str) -> IcdCode:
        service = self.misc_services[service_index]
        icd = self._new_icd_code(code, description)
        service.icd10_codes.append(icd)
        self._notify()
        return icd

    def remove_icd_from_misc_service(self, service_index: int, icd_index: int) -> None:
        del self.misc_services[service_index].icd10_codes[icd_index]
        self._notify()

    @staticmethod
    def _new_icd_code(code: str, description: str) -> IcdCode:
        code, description = code.strip(), description.strip()
        if not code or not description:
            raise ValueError("ICD-10 code and description are required")
        return IcdCode(code, description)

    def replace_with(self, other: "BillingForm") -> None:
        """Load another form's contents into this one, keeping subscribers."""
        self.icd_codes = list(other.icd_codes)
        self.em_code = other.em_code
        self.misc_services = list(other.misc_services)
        self.notes = other.notes
        self.diagnosis_text = other.diagnosis_text
        self._notify()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the fixture file layout."""
        return {
            "icdCodes": [c.to_dict() for c in self.icd_codes],
            "emCode": self.em_code.to_dict(),
            "addedMiscServices": [s.to_dict() for s in self.misc_services],
            "notes": self.notes,
            "diagnosisText": self.diagnosis_text,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "BillingForm":
        icd_data = data.get("icdCodes", []) or []
        misc_data = data.get("addedMiscServices", []) or []
        em_data = data.get("emCode")
        return BillingForm(
            icd_codes=[IcdCode.from_dict(c) for c in icd_data if isinstance(c, dict)],
            em_code=EmCode.from_dict(em_data) if isinstance(em_data, dict) else EmCode(),
            misc_services=[MiscService.from_dict(s) for s in misc_data if isinstance(s, dict)],
            notes=str(data.get("notes", "") or ""),
            diagnosis_text=str(data.get("diagnosisText", "") or ""),
        )

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:
                pass


@dataclass
class TestCase:
    """An entry of the test case index."""
    __test__ = False  # not a pytest class

    id: str
    name: str
    filename: str
    description: str = ""
    script: str = ""

    @property
    def folder(self) -> str:
        parts = self.filename.split("/")
        return "/".join(parts[:-1])

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TestCase":
        filename = str(data.get("filename", "") or "")
        return TestCase(
            id=str(data.get("id", "") or ""),
            name=str(data.get("name", "") or filename.split("/")[-1]),
            filename=filename,
            description=str(data.get("description", "") or ""),
            script=str(data.get("script", "") or ""),
        )


@dataclass
class ApplicationSettings:
    """Persisted application preferences."""

    start_hotkey: str = "F6"
    stop_hotkey: str = "F7"
    pause_hotkey: str = "F8"
    default_test_case: str = "telehealth-visit"
    pause_poll_ms: int = 100
    arrival_delay_ms: int = 1500
    click_effect_delay_ms: int = 1000
    move_system_pointer: bool = False
    test_cases_dir: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize settings to primitive types for JSON storage."""
        return {
            "start_hotkey": self.start_hotkey,
            "stop_hotkey": self.stop_hotkey,
            "pause_hotkey": self.pause_hotkey,
            "default_test_case": self.default_test_case,
            "pause_poll_ms": self.pause_poll_ms,
            "arrival_delay_ms": self.arrival_delay_ms,
            "click_effect_delay_ms": self.click_effect_delay_ms,
            "move_system_pointer": self.move_system_pointer,
            "test_cases_dir": self.test_cases_dir,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ApplicationSettings":
        """Create settings instance from JSON dictionary."""
        defaults = ApplicationSettings()

        def millis(key: str, default: int, minimum: int, maximum: Optional[int] = None) -> int:
            try:
                value = max(minimum, int(data.get(key, default)))
            except (TypeError, ValueError):
                return default
            return value if maximum is None else min(maximum, value)

        return ApplicationSettings(
            start_hotkey=str(data.get("start_hotkey") or defaults.start_hotkey),
            stop_hotkey=str(data.get("stop_hotkey") or defaults.stop_hotkey),
            pause_hotkey=str(data.get("pause_hotkey") or defaults.pause_hotkey),
            default_test_case=str(data.get("default_test_case") or defaults.default_test_case),
            pause_poll_ms=millis("pause_poll_ms", defaults.pause_poll_ms, 10),
            arrival_delay_ms=millis("arrival_delay_ms", defaults.arrival_delay_ms, 0, MAX_ARRIVAL_DELAY_MS),
            click_effect_delay_ms=millis("click_effect_delay_ms", defaults.click_effect_delay_ms, 0),
            move_system_pointer=bool(data.get("move_system_pointer", False)),
            test_cases_dir=str(data.get("test_cases_dir", "") or ""),
        )
