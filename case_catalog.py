"""Test case catalog: index loading, picker tree, fixture forms and agent scripts."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from models import BillingForm, TestCase
from sequencer import ScriptFormatError, ScriptRegistry

TreeNode = Dict[str, Any]


class CatalogError(Exception):
    """Raised when the test case index or a fixture cannot be read."""


def build_tree(test_cases: List[TestCase]) -> TreeNode:
    """
    Group test cases by the folders of their filename.

    Returns a nested dict ``{"folders": {name: node}, "files": [TestCase]}``;
    keys are only present when non-empty. File entries carry the last path
    segment as their name.
    """
    root: TreeNode = {}
    for case in test_cases:
        parts = [p for p in case.filename.split("/") if p]
        if not parts:
            continue
        node = root
        for folder in parts[:-1]:
            node = node.setdefault("folders", {}).setdefault(folder, {})
        node.setdefault("files", []).append(
            TestCase(
                id=case.id,
                name=parts[-1],
                filename=case.filename,
                description=case.description,
                script=case.script,
            )
        )
    return root


class CaseCatalog:
    """Reads the test case index and fixture files from a directory."""

    INDEX_FILE = "index.json"
    SCRIPTS_FILE = "scripts.json"

    def __init__(self, root_dir: Optional[Path] = None) -> None:
        package_root = Path(__file__).resolve().parent
        self._root = Path(root_dir) if root_dir else package_root / "test_cases"
        self._cases: Optional[List[TestCase]] = None

    @property
    def root_dir(self) -> Path:
        return self._root

    def load_index(self) -> List[TestCase]:
        data = self._read_json(self._root / self.INDEX_FILE)
        raw_cases = data.get("testCases")
        if not isinstance(raw_cases, list):
            raise CatalogError("Index has no 'testCases' list")
        cases = [TestCase.from_dict(raw) for raw in raw_cases if isinstance(raw, dict)]
        self._cases = [c for c in cases if c.id and c.filename]
        return list(self._cases)

    def test_cases(self) -> List[TestCase]:
        if self._cases is None:
            return self.load_index()
        return list(self._cases)

    def tree(self) -> TreeNode:
        return build_tree(self.test_cases())

    def find(self, case_id: str) -> TestCase:
        for case in self.test_cases():
            if case.id == case_id:
                return case
        raise CatalogError(f"Unknown test case: {case_id}")

    def load_form(self, case_id: str) -> BillingForm:
        case = self.find(case_id)
        return BillingForm.from_dict(self._read_json(self._root / case.filename))

    def apply(self, case_id: str, form: BillingForm) -> TestCase:
        """Load a fixture into the live form and return its test case."""
        case = self.find(case_id)
        form.replace_with(BillingForm.from_dict(self._read_json(self._root / case.filename)))
        return case

    def load_scripts(self) -> ScriptRegistry:
        """Parse the agent scripts stored beside the index."""
        path = self._root / self.SCRIPTS_FILE
        try:
            return ScriptRegistry.from_dict(self._read_json(path))
        except ScriptFormatError as exc:
            raise CatalogError(f"Invalid script in {path}: {exc}") from exc

    @staticmethod
    def _read_json(path: Path) -> Dict[str, Any]:
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CatalogError(f"Cannot read {path}: {exc}") from exc
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise CatalogError(f"Invalid JSON in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise CatalogError(f"{path} does not contain a JSON object")
        return data
