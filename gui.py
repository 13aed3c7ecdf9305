"""
Graphical user interface for the Billing Agent demo.

Key capabilities
----------------
- Pick a test case from the folder tree and load its claim into the form
- Show and edit the claim (diagnosis codes, E/M line, misc services,
  diagnosis text, notes); the form is locked while the agent runs
- Run the scripted agent with start / pause-resume / stop and a progress bar
- Show, clear and export the agent's decision log and the status log
- Global hotkeys and persisted preferences
"""

from __future__ import annotations

import tkinter as tk
from operator import attrgetter
from pathlib import Path
from tkinter import messagebox, scrolledtext, ttk
from typing import Any, Callable, Dict, List, Optional, Tuple

from billing_scripts import (
    DIAGNOSIS_TEXTAREA,
    EM_MODIFIERS_INPUT,
    ICD_CODES_SECTION,
    build_default_registry,
)
from case_catalog import CaseCatalog, CatalogError, TreeNode
from agent_overlay import OverlayChoreographer
from hotkey_manager import HotkeyManager
from logger import StatusEntry, StatusLogger
from models import ApplicationSettings, BillingForm, TestCase
from sequencer import ScriptRegistry, SequencerEngine, TkScheduler, UnknownScriptError
from settings_manager import SettingsManager


class AgentDemoGUI:
    """Tkinter based GUI that wires the form, the catalog and the agent engine."""

    PROGRESS_POLL_MS = 150
    DEFAULT_WINDOW_SIZE = (1280, 820)
    MIN_WINDOW_SIZE = (1000, 680)
    WINDOW_MARGIN = (80, 120)

    def __init__(self, root: tk.Tk, cases_dir: Optional[Path] = None):
        self.root = root
        self.root.title("Billing Agent Demo")
        self._configure_window_geometry()

        self.settings_manager = SettingsManager()
        self.settings: ApplicationSettings = self.settings_manager.load()

        self.style = ttk.Style()
        self._configure_styles()

        # Runtime state --------------------------------------------------
        self.form = BillingForm.default()
        self.catalog = CaseCatalog(cases_dir or self.settings.test_cases_dir or None)
        self.selected_case: Optional[TestCase] = None
        self.logger = StatusLogger()
        self.elements: Dict[str, tk.Widget] = {}
        # (widget, locked state, unlocked state) toggled while the agent runs
        self.form_inputs: List[Tuple[tk.Widget, str, str]] = []
        self.form_fields: List[Tuple[str, Callable[[], Any]]] = []
        self.form_locked = False
        self.progress_job: Optional[str] = None

        self.scheduler = TkScheduler(root)
        self.choreographer = OverlayChoreographer(
            root,
            self.scheduler,
            resolve=self.elements.get,
            arrival_delay=self.settings.arrival_delay_ms / 1000.0,
            click_delay=self.settings.click_effect_delay_ms / 1000.0,
            move_system_pointer=self.settings.move_system_pointer,
        )
        try:
            self.registry = build_default_registry(self.catalog)
        except CatalogError as exc:
            self.registry = ScriptRegistry()
            self.logger.log(f"Agent scripts could not be loaded: {exc}", "ERROR")
        self.engine = SequencerEngine(
            self.registry,
            self.scheduler,
            app_state=self.form,
            choreographer=self.choreographer,
            pause_poll_seconds=self.settings.pause_poll_ms / 1000.0,
        )
        self.hotkey_manager = HotkeyManager(
            start_hotkey=self.settings.start_hotkey,
            pause_hotkey=self.settings.pause_hotkey,
            stop_hotkey=self.settings.stop_hotkey,
        )

        # Tk variables ---------------------------------------------------
        self.status_var = tk.StringVar(value="Status: Ready")
        self.step_var = tk.StringVar(value="Step 0 of 0")
        self.script_title_var = tk.StringVar(value="")
        self.case_description_var = tk.StringVar(value="No test case loaded")
        self.em_code_var = tk.StringVar()
        self.em_description_var = tk.StringVar()
        self.em_modifiers_var = tk.StringVar()
        self.em_units_var = tk.StringVar()
        self.em_bill_var = tk.BooleanVar(value=True)
        self.new_icd_code_var = tk.StringVar()
        self.new_icd_description_var = tk.StringVar()
        self.misc_code_var = tk.StringVar()
        self.misc_description_var = tk.StringVar()
        self.misc_modifiers_var = tk.StringVar()
        self.misc_units_var = tk.StringVar(value="1")
        self.misc_bill_var = tk.BooleanVar(value=True)
        self.misc_icd_code_var = tk.StringVar()
        self.misc_icd_description_var = tk.StringVar()
        self.start_hotkey_var = tk.StringVar(value=self.settings.start_hotkey)
        self.pause_hotkey_var = tk.StringVar(value=self.settings.pause_hotkey)
        self.stop_hotkey_var = tk.StringVar(value=self.settings.stop_hotkey)
        self.move_pointer_var = tk.BooleanVar(value=self.settings.move_system_pointer)

        # UI --------------------------------------------------------------
        self._build_ui()
        self.logger.on_entry(self._append_status_line)
        self._refresh_status_log()
        self.engine.register_status_callback(self._on_engine_status)
        self.engine.decision_log.subscribe(self._refresh_decision_log)
        self.form.subscribe(self._refresh_form_view)

        self._load_catalog()
        self._refresh_form_view()
        self._refresh_decision_log()

        # Services -------------------------------------------------------
        self._setup_hotkeys()
        self._start_progress_updates()

        self.root.protocol("WM_DELETE_WINDOW", self._on_closing)

    def _configure_window_geometry(self) -> None:
        """Center the window on the primary monitor, shrinking it on small screens."""
        sx, sy, screen_width, screen_height = self._get_primary_screen_bounds()
        margin_x, margin_y = self.WINDOW_MARGIN
        usable_width = max(screen_width - margin_x, 640)
        usable_height = max(screen_height - margin_y, 480)

        default_width, default_height = self.DEFAULT_WINDOW_SIZE
        min_width, min_height = self.MIN_WINDOW_SIZE
        width = max(min(default_width, usable_width), min(min_width, usable_width))
        height = max(min(default_height, usable_height), min(min_height, usable_height))

        x = max((screen_width - width) // 2 + sx, sx)
        y = max((screen_height - height) // 2 + sy, sy)
        self.root.geometry(f"{width}x{height}+{x}+{y}")
        self.root.minsize(min(min_width, width), min(min_height, height))

    def _get_primary_screen_bounds(self) -> Tuple[int, int, int, int]:
        """Return (x, y, width, height) of the primary monitor."""
        try:
            from screeninfo import get_monitors  # type: ignore
            mons = get_monitors()
            if not mons:
                raise RuntimeError()
            primary = next((m for m in mons if getattr(m, "is_primary", False)), mons[0])
            return int(primary.x), int(primary.y), int(primary.width), int(primary.height)
        except Exception:
            # Fallback to Tk single screen
            try:
                return 0, 0, int(self.root.winfo_screenwidth()), int(self.root.winfo_screenheight())
            except tk.TclError:
                return 0, 0, 1280, 800

    def _configure_styles(self) -> None:
        try:
            self.style.theme_use("clam")
        except tk.TclError:
            pass

        self.style.configure(".", font=("Segoe UI", 10))
        self.style.configure("Header.TLabel", font=("Segoe UI", 15, "bold"))
        self.style.configure("Hint.TLabel", font=("Segoe UI", 9), foreground="#475569")
        self.style.configure("Card.TLabelframe", borderwidth=1, relief="solid")
        self.style.configure("Card.TLabelframe.Label", font=("Segoe UI", 11, "bold"))
        self.style.configure("Accent.TButton", padding=(10, 7))
        self.style.configure("Danger.TButton", padding=(10, 7))
        self.style.configure("Ghost.TButton", padding=(8, 6), borderwidth=0)

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------
    def _build_ui(self) -> None:
        self.root.columnconfigure(0, weight=1)
        self.root.rowconfigure(0, weight=1)

        container = ttk.Frame(self.root, padding=12)
        container.grid(row=0, column=0, sticky="nsew")
        container.columnconfigure(0, weight=0, minsize=240)
        container.columnconfigure(1, weight=3, minsize=460)
        container.columnconfigure(2, weight=2, minsize=380)
        container.rowconfigure(0, weight=1)
        container.rowconfigure(1, weight=0)

        self._build_case_picker(container)
        self._build_form_section(container)
        self._build_agent_panel(container)

        ttk.Label(container, textvariable=self.status_var, style="Hint.TLabel").grid(
            row=1, column=0, columnspan=3, sticky="w", pady=(8, 0)
        )

    def _build_case_picker(self, parent: ttk.Frame) -> None:
        frame = ttk.LabelFrame(parent, text="Test Cases", padding=10, style="Card.TLabelframe")
        frame.grid(row=0, column=0, sticky="nsew", padx=(0, 12))
        frame.columnconfigure(0, weight=1)
        frame.rowconfigure(0, weight=1)

        self.case_tree = ttk.Treeview(frame, show="tree", selectmode="browse")
        self.case_tree.grid(row=0, column=0, sticky="nsew")
        self.case_tree.bind("<<TreeviewSelect>>", self._on_case_selected)

        ttk.Label(
            frame,
            textvariable=self.case_description_var,
            style="Hint.TLabel",
            wraplength=210,
        ).grid(row=1, column=0, sticky="w", pady=(8, 0))

        ttk.Button(frame, text="Reload", command=self._load_catalog, style="Ghost.TButton").grid(
            row=2, column=0, sticky="e", pady=(8, 0)
        )

    def _build_form_section(self, parent: ttk.Frame) -> None:
        frame = ttk.LabelFrame(parent, text="Claim Review", padding=12, style="Card.TLabelframe")
        frame.grid(row=0, column=1, sticky="nsew", padx=(0, 12))
        frame.columnconfigure(0, weight=1)
        frame.rowconfigure(3, weight=1)

        # Diagnosis codes
        icd_frame = ttk.Frame(frame)
        icd_frame.grid(row=0, column=0, sticky="ew")
        icd_frame.columnconfigure(0, weight=1)
        ttk.Label(icd_frame, text="Diagnoses (ICD-10)").grid(row=0, column=0, sticky="w")
        self.icd_listbox = tk.Listbox(icd_frame, height=5, activestyle="none", exportselection=False)
        self.icd_listbox.grid(row=1, column=0, sticky="ew", pady=(4, 0))
        remove_icd = ttk.Button(
            icd_frame, text="Remove", command=self._remove_selected_icd, style="Ghost.TButton"
        )
        remove_icd.grid(row=1, column=1, sticky="n", padx=(6, 0), pady=(4, 0))
        self.elements[ICD_CODES_SECTION] = self.icd_listbox

        add_row = ttk.Frame(icd_frame)
        add_row.grid(row=2, column=0, columnspan=2, sticky="ew", pady=(6, 0))
        add_row.columnconfigure(1, weight=1)
        icd_code_entry = ttk.Entry(add_row, textvariable=self.new_icd_code_var, width=10)
        icd_code_entry.grid(row=0, column=0)
        icd_description_entry = ttk.Entry(add_row, textvariable=self.new_icd_description_var)
        icd_description_entry.grid(row=0, column=1, sticky="ew", padx=(6, 0))
        add_icd = ttk.Button(add_row, text="Add", command=self._add_icd_code, style="Ghost.TButton")
        add_icd.grid(row=0, column=2, padx=(6, 0))
        ttk.Label(add_row, text="Code / Description", style="Hint.TLabel").grid(
            row=1, column=0, columnspan=2, sticky="w"
        )
        self._lockable(remove_icd, icd_code_entry, icd_description_entry, add_icd)

        # E/M line
        em_frame = ttk.Frame(frame)
        em_frame.grid(row=1, column=0, sticky="ew", pady=(12, 0))
        for col, weight in enumerate((0, 2, 3, 1, 0, 0)):
            em_frame.columnconfigure(col, weight=weight)
        ttk.Label(em_frame, text="E&M").grid(row=0, column=0, sticky="w", padx=(0, 6))
        code_entry = ttk.Entry(em_frame, textvariable=self.em_code_var, width=8)
        code_entry.grid(row=0, column=1, sticky="ew")
        description_entry = ttk.Entry(em_frame, textvariable=self.em_description_var)
        description_entry.grid(row=0, column=2, sticky="ew", padx=(6, 0))
        modifiers_entry = tk.Entry(
            em_frame, textvariable=self.em_modifiers_var, width=6, readonlybackground="#f1f5f9"
        )
        modifiers_entry.grid(row=0, column=3, sticky="ew", padx=(6, 0))
        self.elements[EM_MODIFIERS_INPUT] = modifiers_entry
        units_entry = ttk.Entry(em_frame, textvariable=self.em_units_var, width=4)
        units_entry.grid(row=0, column=4, padx=(6, 0))
        bill_check = ttk.Checkbutton(
            em_frame,
            text="Bill",
            variable=self.em_bill_var,
            command=lambda: self._commit_field("em_code.bill_checked", bool(self.em_bill_var.get())),
        )
        bill_check.grid(row=0, column=5, padx=(6, 0))
        ttk.Label(em_frame, text="Code / Description / Modifiers / Units", style="Hint.TLabel").grid(
            row=1, column=1, columnspan=4, sticky="w"
        )
        self._bind_entry(code_entry, "em_code.code", self.em_code_var)
        self._bind_entry(description_entry, "em_code.description", self.em_description_var)
        self._bind_entry(modifiers_entry, "em_code.modifiers", self.em_modifiers_var)
        self._bind_entry(units_entry, "em_code.units", self.em_units_var)
        self._lockable(code_entry, description_entry, modifiers_entry, units_entry, bill_check)

        self._build_misc_services(frame, row=2)

        # Diagnosis text & notes
        text_frame = ttk.Frame(frame)
        text_frame.grid(row=3, column=0, sticky="nsew", pady=(12, 0))
        text_frame.columnconfigure(0, weight=1)
        text_frame.rowconfigure(1, weight=3)
        text_frame.rowconfigure(3, weight=1)
        ttk.Label(text_frame, text="Diagnosis Text").grid(row=0, column=0, sticky="w")
        self.diagnosis_text = tk.Text(text_frame, height=8, wrap=tk.WORD)
        self.diagnosis_text.grid(row=1, column=0, sticky="nsew", pady=(4, 0))
        self.elements[DIAGNOSIS_TEXTAREA] = self.diagnosis_text
        ttk.Label(text_frame, text="Notes").grid(row=2, column=0, sticky="w", pady=(8, 0))
        self.notes_text = tk.Text(text_frame, height=3, wrap=tk.WORD)
        self.notes_text.grid(row=3, column=0, sticky="nsew", pady=(4, 0))
        self._bind_text(self.diagnosis_text, "diagnosis_text")
        self._bind_text(self.notes_text, "notes")
        self._lockable(self.diagnosis_text, self.notes_text)

    def _build_misc_services(self, parent: ttk.Frame, row: int) -> None:
        frame = ttk.Frame(parent)
        frame.grid(row=row, column=0, sticky="ew", pady=(12, 0))
        frame.columnconfigure(0, weight=1)
        ttk.Label(frame, text="Misc Services").grid(row=0, column=0, sticky="w")

        # Services are top-level rows, their ICD-10 pointers are child rows
        self.misc_tree = ttk.Treeview(
            frame, columns=("description", "modifiers", "units", "bill"), height=4, selectmode="browse"
        )
        for column, heading, width in (
            ("#0", "Code", 110),
            ("description", "Description", 160),
            ("modifiers", "Mod", 50),
            ("units", "Units", 45),
            ("bill", "Bill", 40),
        ):
            self.misc_tree.heading(column, text=heading)
            self.misc_tree.column(column, width=width, stretch=column == "description")
        self.misc_tree.grid(row=1, column=0, sticky="ew", pady=(4, 0))
        self.misc_tree.bind("<<TreeviewSelect>>", self._on_misc_selected)

        editor = ttk.Frame(frame)
        editor.grid(row=2, column=0, sticky="ew", pady=(6, 0))
        editor.columnconfigure(1, weight=1)
        inputs = [
            ttk.Entry(editor, textvariable=self.misc_code_var, width=8),
            ttk.Entry(editor, textvariable=self.misc_description_var),
            ttk.Entry(editor, textvariable=self.misc_modifiers_var, width=6),
            ttk.Entry(editor, textvariable=self.misc_units_var, width=4),
            ttk.Checkbutton(editor, text="Bill", variable=self.misc_bill_var),
        ]
        for col, widget in enumerate(inputs):
            widget.grid(row=0, column=col, sticky="ew", padx=(0 if col == 0 else 6, 0))

        buttons = ttk.Frame(frame)
        buttons.grid(row=3, column=0, sticky="w", pady=(6, 0))
        for col, (text, command) in enumerate(
            (
                ("Add Service", self._add_misc_service),
                ("Save Service", self._save_misc_service),
                ("Remove", self._remove_misc_selection),
            )
        ):
            button = ttk.Button(buttons, text=text, command=command, style="Ghost.TButton")
            button.grid(row=0, column=col, padx=(0, 6))
            inputs.append(button)

        pointer_row = ttk.Frame(frame)
        pointer_row.grid(row=4, column=0, sticky="ew", pady=(6, 0))
        pointer_row.columnconfigure(1, weight=1)
        pointer_inputs = [
            ttk.Entry(pointer_row, textvariable=self.misc_icd_code_var, width=10),
            ttk.Entry(pointer_row, textvariable=self.misc_icd_description_var),
            ttk.Button(pointer_row, text="Add ICD", command=self._add_misc_icd, style="Ghost.TButton"),
        ]
        for col, widget in enumerate(pointer_inputs):
            widget.grid(row=0, column=col, sticky="ew", padx=(0 if col == 0 else 6, 0))
        ttk.Label(
            pointer_row, text="ICD-10 pointer for the selected service", style="Hint.TLabel"
        ).grid(row=1, column=0, columnspan=3, sticky="w")
        self._lockable(*inputs, *pointer_inputs)

    def _lockable(self, *widgets: tk.Widget) -> None:
        for widget in widgets:
            if isinstance(widget, tk.Text):
                self.form_inputs.append((widget, tk.DISABLED, tk.NORMAL))
            elif isinstance(widget, (tk.Entry, ttk.Entry)):
                self.form_inputs.append((widget, "readonly", "normal"))
            else:
                self.form_inputs.append((widget, "disabled", "normal"))

    def _bind_entry(self, widget: tk.Widget, path: str, var: tk.Variable) -> None:
        self.form_fields.append((path, var.get))

        def commit(_event=None) -> None:
            self._commit_field(path, var.get())

        widget.bind("<FocusOut>", commit)
        widget.bind("<Return>", commit)

    def _bind_text(self, widget: tk.Text, path: str) -> None:
        def read() -> str:
            return widget.get("1.0", "end-1c")

        self.form_fields.append((path, read))
        widget.bind("<FocusOut>", lambda _event: self._commit_field(path, read()))

    def _build_agent_panel(self, parent: ttk.Frame) -> None:
        frame = ttk.LabelFrame(parent, text="AI Agent Extension", padding=12, style="Card.TLabelframe")
        frame.grid(row=0, column=2, sticky="nsew")
        frame.columnconfigure(0, weight=1)
        frame.rowconfigure(4, weight=2)
        frame.rowconfigure(6, weight=1)

        progress_row = ttk.Frame(frame)
        progress_row.grid(row=0, column=0, sticky="ew")
        progress_row.columnconfigure(1, weight=1)
        ttk.Label(progress_row, textvariable=self.step_var).grid(row=0, column=0, sticky="w")
        self.progress_bar = ttk.Progressbar(progress_row, maximum=100, mode="determinate")
        self.progress_bar.grid(row=0, column=1, sticky="ew", padx=(8, 0))

        controls = ttk.Frame(frame)
        controls.grid(row=1, column=0, sticky="w", pady=(10, 0))
        self.start_button = ttk.Button(
            controls, text="Start Agent", command=self._start_agent, style="Accent.TButton"
        )
        self.start_button.grid(row=0, column=0, padx=(0, 6))
        self.pause_button = ttk.Button(
            controls, text="Pause", command=self._toggle_pause, style="Accent.TButton"
        )
        self.pause_button.grid(row=0, column=1, padx=(0, 6))
        self.stop_button = ttk.Button(
            controls, text="Stop", command=self._stop_agent, style="Danger.TButton"
        )
        self.stop_button.grid(row=0, column=2)

        ttk.Label(frame, textvariable=self.script_title_var, style="Hint.TLabel").grid(
            row=2, column=0, sticky="w", pady=(6, 0)
        )

        log_header = ttk.Frame(frame)
        log_header.grid(row=3, column=0, sticky="ew", pady=(12, 0))
        log_header.columnconfigure(0, weight=1)
        ttk.Label(log_header, text="Agent Decision Log").grid(row=0, column=0, sticky="w")
        ttk.Button(
            log_header, text="Export", command=self._export_decision_log, style="Ghost.TButton"
        ).grid(row=0, column=1, padx=(0, 6))
        ttk.Button(
            log_header, text="Clear Log", command=self.engine.clear_log, style="Ghost.TButton"
        ).grid(row=0, column=2)

        self.decision_text = scrolledtext.ScrolledText(frame, height=12, state=tk.DISABLED, wrap=tk.WORD)
        self.decision_text.grid(row=4, column=0, sticky="nsew", pady=(6, 0))
        self.decision_text.tag_configure("high", foreground="#166534")
        self.decision_text.tag_configure("medium", foreground="#854d0e")
        self.decision_text.tag_configure("low", foreground="#991b1b")
        self.decision_text.tag_configure("meta", foreground="#64748b")

        status_header = ttk.Frame(frame)
        status_header.grid(row=5, column=0, sticky="ew", pady=(12, 0))
        status_header.columnconfigure(0, weight=1)
        ttk.Label(status_header, text="Status Log").grid(row=0, column=0, sticky="w")
        ttk.Button(
            status_header, text="Export", command=self._export_status_log, style="Ghost.TButton"
        ).grid(row=0, column=1, padx=(0, 6))
        ttk.Button(
            status_header, text="Clear", command=self._clear_status_log, style="Ghost.TButton"
        ).grid(row=0, column=2)
        self.status_text = scrolledtext.ScrolledText(frame, height=6, state=tk.DISABLED, wrap=tk.WORD)
        self.status_text.grid(row=6, column=0, sticky="nsew", pady=(6, 0))

        self._build_hotkey_row(frame, row=7)

    def _build_hotkey_row(self, parent: ttk.Frame, row: int) -> None:
        frame = ttk.Frame(parent)
        frame.grid(row=row, column=0, sticky="ew", pady=(12, 0))
        for col, (label, var) in enumerate(
            (("Start", self.start_hotkey_var), ("Pause", self.pause_hotkey_var), ("Stop", self.stop_hotkey_var))
        ):
            ttk.Label(frame, text=label).grid(row=0, column=col * 2, padx=(0 if col == 0 else 8, 4))
            ttk.Entry(frame, textvariable=var, width=8).grid(row=0, column=col * 2 + 1)
        ttk.Button(frame, text="Apply", command=self._apply_hotkeys, style="Ghost.TButton").grid(
            row=0, column=6, padx=(8, 0)
        )
        ttk.Checkbutton(
            frame,
            text="Move system pointer with the agent",
            variable=self.move_pointer_var,
            command=self._on_move_pointer_toggle,
        ).grid(row=1, column=0, columnspan=7, sticky="w", pady=(6, 0))

    # ------------------------------------------------------------------
    # Test cases
    # ------------------------------------------------------------------
    def _load_catalog(self) -> None:
        try:
            cases = self.catalog.load_index()
        except CatalogError as exc:
            self._log_message(f"Test cases could not be loaded: {exc}", level="WARNING")
            return

        self.case_tree.delete(*self.case_tree.get_children())
        self._insert_tree_nodes("", self.catalog.tree())
        self._log_message(f"{len(cases)} test cases loaded from {self.catalog.root_dir}")

        default_id = self.settings.default_test_case
        if any(c.id == default_id for c in cases) and self.case_tree.exists(default_id):
            self.case_tree.see(default_id)
            self.case_tree.selection_set(default_id)

    def _insert_tree_nodes(self, parent_iid: str, node: TreeNode, path: str = "") -> None:
        for folder, subtree in sorted(node.get("folders", {}).items()):
            folder_path = f"{path}/{folder}" if path else folder
            iid = f"folder:{folder_path}"
            self.case_tree.insert(parent_iid, tk.END, iid=iid, text=f"📁 {folder}", open=False)
            self._insert_tree_nodes(iid, subtree, folder_path)
        for case in node.get("files", []):
            label = case.name[:-5] if case.name.endswith(".json") else case.name
            self.case_tree.insert(parent_iid, tk.END, iid=case.id, text=label)

    def _on_case_selected(self, _event=None) -> None:
        selection = self.case_tree.selection()
        if not selection or selection[0].startswith("folder:"):
            return
        case_id = selection[0]
        if self.selected_case and self.selected_case.id == case_id:
            return
        if self.engine.is_running():
            self._log_message("Stop the agent before switching test cases.", level="WARNING")
            if self.selected_case:
                self.case_tree.selection_set(self.selected_case.id)
            return
        try:
            case = self.catalog.apply(case_id, self.form)
        except CatalogError as exc:
            messagebox.showerror("Test case", f"Test case could not be loaded: {exc}")
            self._log_message(f"Test case could not be loaded: {exc}", level="ERROR")
            return
        self.selected_case = case
        self.case_description_var.set(case.description or case.name)
        if case.script in self.registry:
            script = self.registry.get(case.script)
            self.script_title_var.set(f"{script.title} ({len(script)} steps, {script.total_dwell:.1f} s)")
        else:
            self.script_title_var.set(f"No agent script for {case.id}")
        self._log_message(f"Loaded test case {case.id}")

    def _remove_selected_icd(self) -> None:
        selection = self.icd_listbox.curselection()
        if not selection:
            return
        self.form.remove_icd_code(selection[0])

    def _add_icd_code(self) -> None:
        try:
            self.form.add_icd_code(self.new_icd_code_var.get(), self.new_icd_description_var.get())
        except ValueError as exc:
            messagebox.showwarning("Diagnoses", str(exc))
            return
        self.new_icd_code_var.set("")
        self.new_icd_description_var.set("")

    # ------------------------------------------------------------------
    # Form editing
    # ------------------------------------------------------------------
    def _commit_field(self, path: str, value: Any) -> None:
        if self.form_locked:
            return
        if attrgetter(path)(self.form) != value:
            self.form.set_field(path, value)

    def _commit_form_edits(self) -> None:
        """Write pending entry and text edits back to the form."""
        for path, read in self.form_fields:
            self._commit_field(path, read())

    def _set_form_locked(self, locked: bool) -> None:
        self.form_locked = locked
        for widget, locked_state, unlocked_state in self.form_inputs:
            try:
                widget.configure(state=locked_state if locked else unlocked_state)
            except tk.TclError:
                pass

    def _selected_misc(self) -> Tuple[Optional[int], Optional[int]]:
        """(service index, pointer index) of the misc tree selection."""
        selection = self.misc_tree.selection()
        if not selection:
            return None, None
        parts = selection[0].split(":")
        pointer = int(parts[2]) if parts[0] == "icd" else None
        return int(parts[1]), pointer

    def _on_misc_selected(self, _event=None) -> None:
        service_index, _ = self._selected_misc()
        if service_index is None or service_index >= len(self.form.misc_services):
            return
        service = self.form.misc_services[service_index]
        self.misc_code_var.set(service.code)
        self.misc_description_var.set(service.description)
        self.misc_modifiers_var.set(service.modifiers)
        self.misc_units_var.set(service.units)
        self.misc_bill_var.set(service.bill_checked)

    def _add_misc_service(self) -> None:
        try:
            self.form.add_misc_service(self.misc_code_var.get())
        except ValueError as exc:
            messagebox.showwarning("Misc services", str(exc))
            return
        self.misc_tree.selection_set(f"service:{len(self.form.misc_services) - 1}")

    def _save_misc_service(self) -> None:
        service_index, _ = self._selected_misc()
        if service_index is None:
            messagebox.showinfo("Misc services", "Select a service first.")
            return
        service = self.form.misc_services[service_index]
        values = {
            "code": self.misc_code_var.get().strip() or service.code,
            "description": self.misc_description_var.get(),
            "modifiers": self.misc_modifiers_var.get(),
            "units": self.misc_units_var.get().strip() or "1",
            "bill_checked": bool(self.misc_bill_var.get()),
        }
        for field_name, value in values.items():
            if getattr(service, field_name) != value:
                self.form.update_misc_service(service_index, field_name, value)

    def _remove_misc_selection(self) -> None:
        service_index, pointer_index = self._selected_misc()
        if service_index is None:
            return
        if pointer_index is None:
            self.form.remove_misc_service(service_index)
        else:
            self.form.remove_icd_from_misc_service(service_index, pointer_index)

    def _add_misc_icd(self) -> None:
        service_index, _ = self._selected_misc()
        if service_index is None:
            messagebox.showinfo("Misc services", "Select a service first.")
            return
        try:
            self.form.add_icd_to_misc_service(
                service_index, self.misc_icd_code_var.get(), self.misc_icd_description_var.get()
            )
        except ValueError as exc:
            messagebox.showwarning("Misc services", str(exc))
            return
        self.misc_icd_code_var.set("")
        self.misc_icd_description_var.set("")

    # ------------------------------------------------------------------
    # Agent control
    # ------------------------------------------------------------------
    def _start_agent(self) -> None:
        if self.selected_case is None:
            messagebox.showinfo("Agent", "Select a test case first.")
            return
        if not self.engine.is_running():
            self._commit_form_edits()
        try:
            self.engine.start(self.selected_case.script)
        except UnknownScriptError as exc:
            messagebox.showerror("Agent", str(exc))
            self._log_message(str(exc), level="ERROR")
        self._refresh_controls()

    def _toggle_pause(self) -> None:
        self.engine.toggle_pause()
        self._refresh_controls()

    def _stop_agent(self) -> None:
        self.engine.stop()
        self._refresh_controls()

    def _on_engine_status(self, message: str, level: str) -> None:
        self._log_message(message, level=level)

    # ------------------------------------------------------------------
    # View refresh
    # ------------------------------------------------------------------
    def _refresh_form_view(self) -> None:
        self.icd_listbox.delete(0, tk.END)
        for index, code in enumerate(self.form.icd_codes):
            prefix = "Primary" if index == 0 else f"#{index + 1}"
            self.icd_listbox.insert(tk.END, f"{prefix}: {code}")

        em = self.form.em_code
        self.em_code_var.set(em.code)
        self.em_description_var.set(em.description)
        self.em_modifiers_var.set(em.modifiers)
        self.em_units_var.set(em.units)
        self.em_bill_var.set(em.bill_checked)

        self._refresh_misc_tree()

        self._set_text(self.diagnosis_text, self.form.diagnosis_text)
        self._set_text(self.notes_text, self.form.notes)

    def _refresh_misc_tree(self) -> None:
        selection = self.misc_tree.selection()
        self.misc_tree.delete(*self.misc_tree.get_children())
        for index, service in enumerate(self.form.misc_services):
            iid = f"service:{index}"
            self.misc_tree.insert(
                "",
                tk.END,
                iid=iid,
                text=service.code,
                values=(
                    service.description,
                    service.modifiers,
                    service.units,
                    "Yes" if service.bill_checked else "No",
                ),
                open=True,
            )
            for pointer, icd in enumerate(service.icd10_codes):
                self.misc_tree.insert(
                    iid, tk.END, iid=f"icd:{index}:{pointer}", text=icd.code, values=(icd.description,)
                )
        if selection and self.misc_tree.exists(selection[0]):
            self.misc_tree.selection_set(selection[0])

    def _refresh_decision_log(self) -> None:
        widget = self.decision_text
        widget.configure(state=tk.NORMAL)
        widget.delete("1.0", tk.END)
        entries = self.engine.decision_log.entries()
        if not entries:
            widget.insert(tk.END, "No agent actions yet\nStart the agent to see decision logs", "meta")
        for entry in entries:
            widget.insert(
                tk.END,
                f"Step {entry.step + 1} • {entry.timestamp} • {round(entry.confidence * 100)}% confidence\n",
                "meta",
            )
            widget.insert(tk.END, f"{entry.action}\n", entry.confidence_band)
            widget.insert(tk.END, f"{entry.reasoning}\n\n")
        widget.see(tk.END)
        widget.configure(state=tk.DISABLED)

    def _refresh_controls(self) -> None:
        state = self.engine.state
        self.step_var.set(f"Step {state.current_step} of {state.total_steps}")
        self.progress_bar["value"] = state.progress * 100
        self.start_button.configure(
            text="Running..." if state.is_active else "Start Agent",
            state=tk.DISABLED if state.is_active else tk.NORMAL,
        )
        self.pause_button.configure(
            text="Resume" if state.is_paused else "Pause",
            state=tk.NORMAL if state.is_active else tk.DISABLED,
        )
        self.stop_button.configure(state=tk.NORMAL if state.is_active else tk.DISABLED)
        if state.is_active != self.form_locked:
            self._set_form_locked(state.is_active)

    def _start_progress_updates(self) -> None:
        def poll() -> None:
            self._refresh_controls()
            self.progress_job = self.root.after(self.PROGRESS_POLL_MS, poll)

        poll()

    @staticmethod
    def _set_text(widget: tk.Text, content: str) -> None:
        if widget.get("1.0", "end-1c") == content:
            return
        state = widget.cget("state")
        widget.configure(state=tk.NORMAL)
        widget.delete("1.0", tk.END)
        widget.insert("1.0", content)
        widget.configure(state=state)

    # ------------------------------------------------------------------
    # Hotkeys & logging
    # ------------------------------------------------------------------
    def _setup_hotkeys(self) -> None:
        self.hotkey_manager.register_callback("start", lambda: self.root.after(0, self._start_agent))
        self.hotkey_manager.register_callback("pause", lambda: self.root.after(0, self._toggle_pause))
        self.hotkey_manager.register_callback("stop", lambda: self.root.after(0, self._stop_agent))
        if not self.hotkey_manager.enable_hotkeys():
            self._log_message("Global hotkeys could not be registered. Check system permissions.", level="WARNING")

    def _apply_hotkeys(self) -> None:
        start = self.start_hotkey_var.get().strip() or "F6"
        pause = self.pause_hotkey_var.get().strip() or "F8"
        stop = self.stop_hotkey_var.get().strip() or "F7"
        if self.hotkey_manager.update_hotkeys(start, pause, stop):
            self._log_message(f"Hotkeys updated: Start={start}, Pause={pause}, Stop={stop}")
            self._persist_settings()
        else:
            messagebox.showwarning("Hotkeys", "Hotkeys could not be updated.")

    def _on_move_pointer_toggle(self) -> None:
        self.choreographer.move_system_pointer = bool(self.move_pointer_var.get())
        self._persist_settings()

    def _log_message(self, message: str, level: str = "INFO") -> None:
        self.logger.log(message, level)
        self.status_var.set(f"Status: {message}")

    def _append_status_line(self, entry: StatusEntry) -> None:
        self.status_text.configure(state=tk.NORMAL)
        self.status_text.insert(tk.END, f"{entry}\n")
        self.status_text.see(tk.END)
        self.status_text.configure(state=tk.DISABLED)

    def _refresh_status_log(self) -> None:
        self.status_text.configure(state=tk.NORMAL)
        self.status_text.delete("1.0", tk.END)
        for entry in self.logger.get_all_logs():
            self.status_text.insert(tk.END, f"{entry}\n")
        self.status_text.see(tk.END)
        self.status_text.configure(state=tk.DISABLED)

    def _clear_status_log(self) -> None:
        self.logger.clear_logs()
        self._refresh_status_log()

    def _export_status_log(self) -> None:
        from tkinter import filedialog

        path = filedialog.asksaveasfilename(
            defaultextension=".txt",
            filetypes=[("Text files", "*.txt"), ("All files", "*.*")],
        )
        if not path:
            return
        if self.logger.export_logs_to_file(path):
            messagebox.showinfo("Export", "Status log exported.")
        else:
            messagebox.showerror("Export", "Status log could not be exported.")

    def _export_decision_log(self) -> None:
        from tkinter import filedialog

        path = filedialog.asksaveasfilename(
            defaultextension=".txt",
            filetypes=[("Text files", "*.txt"), ("All files", "*.*")],
        )
        if not path:
            return
        if self.engine.decision_log.export_to_file(path):
            messagebox.showinfo("Export", "Decision log exported.")
        else:
            messagebox.showerror("Export", "Decision log could not be exported.")

    # ------------------------------------------------------------------
    # Persistence & shutdown
    # ------------------------------------------------------------------
    def _persist_settings(self) -> None:
        self.settings.start_hotkey = self.start_hotkey_var.get().strip() or "F6"
        self.settings.pause_hotkey = self.pause_hotkey_var.get().strip() or "F8"
        self.settings.stop_hotkey = self.stop_hotkey_var.get().strip() or "F7"
        self.settings.move_system_pointer = bool(self.move_pointer_var.get())
        if self.selected_case:
            self.settings.default_test_case = self.selected_case.id
        try:
            self.settings_manager.save(self.settings)
        except OSError as exc:
            self._log_message(f"Settings could not be saved: {exc}", level="ERROR")

    def _on_closing(self) -> None:
        self.engine.stop()
        self.hotkey_manager.disable_hotkeys()
        if self.progress_job:
            self.root.after_cancel(self.progress_job)
        self._persist_settings()
        self.root.destroy()
