#!/usr/bin/env python3
"""
glTF Material Updater - GUI Application

A CustomTkinter-based GUI over the batch updater. Provides:
- A target file list with drag & drop support for .gltf files
- Reference, configuration and output pickers
- Update / export mode, model label and pipeline toggles
- Real-time log output and a determinate progress bar
- Cancellation between batches

Usage:
    python gui.py

Requirements:
    pip install customtkinter tkinterdnd2
"""

from __future__ import annotations

import logging
import queue
import re
import sys
import threading
import tkinter as tk
from datetime import datetime
from pathlib import Path
from tkinter import filedialog, messagebox

# Third-party imports
try:
    import customtkinter as ctk
except ImportError:
    print("ERROR: customtkinter not installed. Run: pip install customtkinter")
    sys.exit(1)

try:
    from tkinterdnd2 import DND_FILES, TkinterDnD
except ImportError:
    print("WARNING: tkinterdnd2 not installed. Drag & drop will be disabled.")
    print("Install with: pip install tkinterdnd2")
    TkinterDnD = None
    DND_FILES = None

# Local imports - ensure we can find the updater module
script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from material_config import MaterialConfigError, load_material_config
from updater import MODES, UpdaterConfig, UpdateStats, run_batch


# --- Constants ---

APP_TITLE = "glTF Material Updater"
APP_VERSION = "1.0.0"
DEFAULT_WINDOW_SIZE = "1200x760"
MIN_WINDOW_SIZE = (900, 600)

DEFAULT_MODEL_LABEL = "Regular"

# Logging queue check interval (ms)
LOG_QUEUE_INTERVAL = 50

GLTF_FILETYPES = [("glTF", "*.gltf"), ("All Files", "*.*")]
JSON_FILETYPES = [("JSON", "*.json"), ("All Files", "*.*")]


# --- Custom Logging Handler ---

class QueueHandler(logging.Handler):
    """Logging handler that puts log records into a queue for GUI consumption."""

    def __init__(self, log_queue: queue.Queue):
        super().__init__()
        self.log_queue = log_queue

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            self.log_queue.put(msg)
        except Exception:
            self.handleError(record)


def split_dropped_paths(data: str) -> list[str]:
    """Split a TkDND drop payload into paths.

    Paths containing spaces arrive wrapped in curly braces:
    ``{C:/My Models/a.gltf} C:/b.gltf``.
    """
    return [braced or bare for braced, bare in re.findall(r"\{([^}]*)\}|(\S+)", data)]


# --- GUI Application ---

class MaterialUpdaterApp:
    """Main GUI application class."""

    def __init__(self):
        # Use TkinterDnD if available for drag & drop support
        if TkinterDnD:
            self.root = TkinterDnD.Tk()
        else:
            self.root = tk.Tk()

        ctk.set_appearance_mode("dark")
        ctk.set_default_color_theme("blue")

        self.root.title(f"{APP_TITLE} v{APP_VERSION}")
        self.root.geometry(DEFAULT_WINDOW_SIZE)
        self.root.minsize(*MIN_WINDOW_SIZE)

        # State variables
        self.target_files: list[Path] = []
        self.update_thread: threading.Thread | None = None
        self.update_cancelled = threading.Event()
        self.log_queue: queue.Queue = queue.Queue()

        self._create_widgets()
        self._setup_logging()

        self._process_log_queue()

    def _create_widgets(self):
        """Create all GUI widgets."""
        self.root.grid_columnconfigure(1, weight=1)
        self.root.grid_rowconfigure(0, weight=1)

        self._create_target_list()
        self._create_update_setup()
        self._create_log_panel()
        self._create_bottom_bar()

    def _create_target_list(self):
        """Create the left panel with the target file list."""
        left_frame = ctk.CTkFrame(self.root, width=300)
        left_frame.grid(row=0, column=0, sticky="nsew", padx=(10, 5), pady=10)
        left_frame.grid_propagate(False)

        title_label = ctk.CTkLabel(
            left_frame,
            text="Target Files",
            font=ctk.CTkFont(size=16, weight="bold")
        )
        title_label.pack(pady=(10, 5), padx=10)

        # Drop zone for .gltf files
        drop_frame = ctk.CTkFrame(left_frame, height=80, border_width=2, border_color="gray40")
        drop_frame.pack(fill="x", padx=10, pady=5)
        drop_frame.pack_propagate(False)

        self.drop_label = ctk.CTkLabel(
            drop_frame,
            text="Drag & drop .gltf files here",
            font=ctk.CTkFont(size=13),
            text_color="gray60"
        )
        self.drop_label.place(relx=0.5, rely=0.5, anchor="center")

        if TkinterDnD and DND_FILES:
            drop_frame.drop_target_register(DND_FILES)
            drop_frame.dnd_bind("<<Drop>>", self._on_drop)
            drop_frame.dnd_bind("<<DragEnter>>", self._on_drag_enter)
            drop_frame.dnd_bind("<<DragLeave>>", self._on_drag_leave)
        else:
            self.drop_label.configure(text="Drag & drop not available\nUse the buttons below")

        self.target_list_frame = ctk.CTkScrollableFrame(left_frame)
        self.target_list_frame.pack(fill="both", expand=True, padx=10, pady=5)

        self.target_info_label = ctk.CTkLabel(
            left_frame,
            text="No files selected",
            font=ctk.CTkFont(size=11),
            text_color="gray"
        )
        self.target_info_label.pack(pady=(0, 5), padx=10)

        btn_frame = ctk.CTkFrame(left_frame, fg_color="transparent")
        btn_frame.pack(fill="x", padx=10, pady=(0, 10))

        add_files_btn = ctk.CTkButton(btn_frame, text="Add Files", width=80, height=25, command=self._add_files)
        add_files_btn.pack(side="left")

        add_folder_btn = ctk.CTkButton(btn_frame, text="Add Folder", width=80, height=25, command=self._add_folder)
        add_folder_btn.pack(side="left", padx=5)

        clear_btn = ctk.CTkButton(btn_frame, text="Clear", width=60, height=25, command=self._clear_targets)
        clear_btn.pack(side="right")

    def _create_update_setup(self):
        """Create the center panel with update setup options."""
        center_frame = ctk.CTkFrame(self.root)
        center_frame.grid(row=0, column=1, sticky="nsew", padx=5, pady=10)

        title_label = ctk.CTkLabel(
            center_frame,
            text="Update Setup",
            font=ctk.CTkFont(size=16, weight="bold")
        )
        title_label.pack(pady=(10, 5))

        self.tabview = ctk.CTkTabview(center_frame)
        self.tabview.pack(fill="both", expand=True, padx=10, pady=5)

        self._create_required_tab()
        self._create_options_tab()

    def _add_path_row(self, tab, row: int, label: str, var: ctk.StringVar, browse) -> None:
        path_label = ctk.CTkLabel(tab, text=label)
        path_label.grid(row=row, column=0, sticky="w", padx=10, pady=5)

        entry = ctk.CTkEntry(tab, textvariable=var)
        entry.grid(row=row, column=1, sticky="ew", padx=5, pady=5)

        browse_btn = ctk.CTkButton(tab, text="Browse", width=70, command=browse)
        browse_btn.grid(row=row, column=2, padx=(0, 10), pady=5)

    def _create_required_tab(self):
        """Create the Required tab with essential paths."""
        tab = self.tabview.add("Required")
        tab.grid_columnconfigure(1, weight=1)

        self.reference_var = ctk.StringVar()
        self._add_path_row(
            tab, 0, "Reference glTF:", self.reference_var,
            lambda: self._browse_file(self.reference_var, "Select Reference glTF", GLTF_FILETYPES)
        )

        self.config_var = ctk.StringVar()
        self._add_path_row(
            tab, 1, "Material Config:", self.config_var,
            lambda: self._browse_file(
                self.config_var, "Select Material Configuration", JSON_FILETYPES, self._refresh_model_labels
            )
        )

        self.output_dir_var = ctk.StringVar()
        self._add_path_row(
            tab, 2, "Output Directory:", self.output_dir_var,
            lambda: self._browse_directory(self.output_dir_var, "Select Output Directory")
        )

        help_label = ctk.CTkLabel(
            tab,
            text="The reference is only read in update mode.",
            text_color="gray60",
            font=ctk.CTkFont(size=11)
        )
        help_label.grid(row=3, column=0, columnspan=3, sticky="w", padx=10, pady=(10, 0))

    def _create_options_tab(self):
        """Create the Options tab with mode, model and pipeline toggles."""
        tab = self.tabview.add("Options")

        options_frame = ctk.CTkFrame(tab, fg_color="transparent")
        options_frame.pack(fill="x", padx=10, pady=10)

        mode_label = ctk.CTkLabel(options_frame, text="Mode:")
        mode_label.grid(row=0, column=0, sticky="w", pady=5)

        self.mode_var = ctk.StringVar(value=MODES[0])
        mode_menu = ctk.CTkOptionMenu(options_frame, variable=self.mode_var, values=list(MODES), width=120)
        mode_menu.grid(row=0, column=1, sticky="w", padx=10, pady=5)

        model_label = ctk.CTkLabel(options_frame, text="Model:")
        model_label.grid(row=1, column=0, sticky="w", pady=5)

        self.model_var = ctk.StringVar(value=DEFAULT_MODEL_LABEL)
        self.model_menu = ctk.CTkOptionMenu(
            options_frame, variable=self.model_var, values=[DEFAULT_MODEL_LABEL], width=120
        )
        self.model_menu.grid(row=1, column=1, sticky="w", padx=10, pady=5)

        self.apply_variants_var = ctk.BooleanVar(value=True)
        variants_cb = ctk.CTkCheckBox(options_frame, text="Apply Variants", variable=self.apply_variants_var)
        variants_cb.grid(row=2, column=0, columnspan=2, sticky="w", pady=5)

        self.mood_rotation_var = ctk.BooleanVar(value=True)
        rotation_cb = ctk.CTkCheckBox(
            options_frame, text="Apply Mood Texture Rotation", variable=self.mood_rotation_var
        )
        rotation_cb.grid(row=3, column=0, columnspan=2, sticky="w", pady=5)

        self.dry_run_var = ctk.BooleanVar(value=False)
        dry_run_cb = ctk.CTkCheckBox(options_frame, text="Dry Run (preview only)", variable=self.dry_run_var)
        dry_run_cb.grid(row=4, column=0, columnspan=2, sticky="w", pady=5)

        self.verbose_var = ctk.BooleanVar(value=False)
        verbose_cb = ctk.CTkCheckBox(options_frame, text="Verbose Logging", variable=self.verbose_var)
        verbose_cb.grid(row=5, column=0, columnspan=2, sticky="w", pady=5)

        jobs_frame = ctk.CTkFrame(tab, fg_color="transparent")
        jobs_frame.pack(fill="x", padx=10, pady=10)

        jobs_label = ctk.CTkLabel(jobs_frame, text="Files per batch:")
        jobs_label.pack(side="left")

        self.jobs_var = ctk.IntVar(value=1)
        jobs_slider = ctk.CTkSlider(
            jobs_frame,
            from_=1,
            to=8,
            number_of_steps=7,
            variable=self.jobs_var,
            width=200,
            command=self._update_jobs_label
        )
        jobs_slider.pack(side="left", padx=10)

        self.jobs_value_label = ctk.CTkLabel(jobs_frame, text="1", width=40)
        self.jobs_value_label.pack(side="left")

    def _create_log_panel(self):
        """Create the right panel with log output."""
        right_frame = ctk.CTkFrame(self.root, width=350)
        right_frame.grid(row=0, column=2, sticky="nsew", padx=(5, 10), pady=10)
        right_frame.grid_propagate(False)

        title_label = ctk.CTkLabel(
            right_frame,
            text="Update Log",
            font=ctk.CTkFont(size=16, weight="bold")
        )
        title_label.pack(pady=(10, 5))

        self.log_text = ctk.CTkTextbox(right_frame, wrap="word", state="disabled")
        self.log_text.pack(fill="both", expand=True, padx=10, pady=5)

        self.log_text._textbox.tag_config("INFO", foreground="#90EE90")
        self.log_text._textbox.tag_config("WARNING", foreground="#FFD700")
        self.log_text._textbox.tag_config("ERROR", foreground="#FF6B6B")
        self.log_text._textbox.tag_config("DEBUG", foreground="#87CEEB")

        btn_frame = ctk.CTkFrame(right_frame, fg_color="transparent")
        btn_frame.pack(fill="x", padx=10, pady=5)

        clear_btn = ctk.CTkButton(btn_frame, text="Clear Log", width=80, command=self._clear_log)
        clear_btn.pack(side="left")

        copy_btn = ctk.CTkButton(btn_frame, text="Copy Log", width=80, command=self._copy_log)
        copy_btn.pack(side="right")

        stats_frame = ctk.CTkFrame(right_frame)
        stats_frame.pack(fill="x", padx=10, pady=(5, 10))

        self.stats_labels = {}
        stats = [
            ("Files:", "files"),
            ("Written:", "written"),
            ("Failed:", "failed"),
        ]

        for i, (label_text, key) in enumerate(stats):
            label = ctk.CTkLabel(stats_frame, text=label_text, font=ctk.CTkFont(size=11))
            label.grid(row=i, column=0, sticky="w", padx=5, pady=2)

            value_label = ctk.CTkLabel(stats_frame, text="-", font=ctk.CTkFont(size=11, weight="bold"))
            value_label.grid(row=i, column=1, sticky="w", padx=5, pady=2)
            self.stats_labels[key] = value_label

    def _create_bottom_bar(self):
        """Create the bottom bar with progress and control buttons."""
        bottom_frame = ctk.CTkFrame(self.root)
        bottom_frame.grid(row=1, column=0, columnspan=3, sticky="ew", padx=10, pady=(0, 10))

        self.progress_bar = ctk.CTkProgressBar(bottom_frame)
        self.progress_bar.pack(fill="x", padx=10, pady=10)
        self.progress_bar.set(0)

        self.progress_label = ctk.CTkLabel(bottom_frame, text="Ready", font=ctk.CTkFont(size=11))
        self.progress_label.pack()

        btn_frame = ctk.CTkFrame(bottom_frame, fg_color="transparent")
        btn_frame.pack(pady=10)

        self.start_btn = ctk.CTkButton(
            btn_frame,
            text="Start",
            font=ctk.CTkFont(size=14, weight="bold"),
            width=150,
            height=40,
            command=self._start_update
        )
        self.start_btn.pack(side="left", padx=10)

        self.cancel_btn = ctk.CTkButton(
            btn_frame,
            text="Cancel",
            width=100,
            height=40,
            fg_color="gray40",
            hover_color="gray30",
            command=self._cancel_update,
            state="disabled"
        )
        self.cancel_btn.pack(side="left", padx=10)

    # --- Event Handlers ---

    def _browse_file(self, var: ctk.StringVar, title: str, filetypes: list, on_selected=None):
        """Open file browser dialog."""
        initial_dir = Path(var.get()).parent if var.get() else None
        path = filedialog.askopenfilename(title=title, initialdir=initial_dir, filetypes=filetypes)
        if path:
            var.set(path)
            if on_selected is not None:
                on_selected()

    def _browse_directory(self, var: ctk.StringVar, title: str):
        """Open directory browser dialog."""
        initial_dir = var.get() if var.get() else None
        path = filedialog.askdirectory(title=title, initialdir=initial_dir)
        if path:
            var.set(path)

    def _add_targets(self, paths: list[Path]) -> None:
        known = {p.name for p in self.target_files}
        for path in paths:
            if path.name in known:
                self._log_message(f"Already in list: {path.name}", level="WARNING")
                continue
            known.add(path.name)
            self.target_files.append(path)
        self._refresh_target_list()

    def _add_files(self):
        paths = filedialog.askopenfilenames(title="Select Target glTF Files", filetypes=GLTF_FILETYPES)
        self._add_targets([Path(p) for p in paths])

    def _add_folder(self):
        folder = filedialog.askdirectory(title="Select Folder With Target glTF Files")
        if folder:
            self._add_targets(sorted(Path(folder).glob("*.gltf"), key=lambda p: p.name.lower()))

    def _clear_targets(self):
        self.target_files.clear()
        self._refresh_target_list()

    def _refresh_target_list(self):
        for widget in self.target_list_frame.winfo_children():
            widget.destroy()
        for path in self.target_files:
            label = ctk.CTkLabel(self.target_list_frame, text=path.name, anchor="w", font=ctk.CTkFont(size=12))
            label.pack(fill="x", pady=1)
        if self.target_files:
            self.target_info_label.configure(text=f"{len(self.target_files)} file(s) selected")
        else:
            self.target_info_label.configure(text="No files selected")

    def _refresh_model_labels(self):
        """Fill the model menu from the selected configuration's ``models``."""
        try:
            config = load_material_config(Path(self.config_var.get()))
        except MaterialConfigError as e:
            self._log_message(str(e), level="WARNING")
            return

        labels = [DEFAULT_MODEL_LABEL] + [name for name in config.models if name != DEFAULT_MODEL_LABEL]
        self.model_menu.configure(values=labels)
        if self.model_var.get() not in labels:
            self.model_var.set(DEFAULT_MODEL_LABEL)
        self._log_message(f"Loaded configuration: {len(config.materials)} materials, {len(labels) - 1} model(s)")

    def _on_drop(self, event):
        """Handle drag & drop of .gltf files."""
        dropped = [Path(p) for p in split_dropped_paths(event.data)]
        accepted = [p for p in dropped if p.suffix.lower() == ".gltf"]
        if len(accepted) < len(dropped):
            self._log_message("Only .gltf files can be dropped", level="WARNING")
        self._add_targets(accepted)

        self.drop_label.configure(text="Drag & drop .gltf files here")

    def _on_drag_enter(self, event):
        self.drop_label.configure(text="Drop .gltf files here!")

    def _on_drag_leave(self, event):
        self.drop_label.configure(text="Drag & drop .gltf files here")

    def _update_jobs_label(self, value):
        self.jobs_value_label.configure(text=str(int(float(value))))

    def _clear_log(self):
        """Clear the log text area."""
        self.log_text.configure(state="normal")
        self.log_text.delete("1.0", "end")
        self.log_text.configure(state="disabled")

    def _copy_log(self):
        """Copy log contents to clipboard."""
        self.root.clipboard_clear()
        self.root.clipboard_append(self.log_text.get("1.0", "end"))
        self._log_message("Log copied to clipboard")

    def _log_message(self, message: str, level: str = "INFO"):
        """Add a message to the log display."""
        timestamp = datetime.now().strftime("%H:%M:%S")
        formatted = f"[{timestamp}] {message}\n"

        self.log_text.configure(state="normal")
        self.log_text.insert("end", formatted, level)
        self.log_text.see("end")
        self.log_text.configure(state="disabled")

    def _setup_logging(self):
        """Route every pipeline logger into the GUI log panel."""
        self.queue_handler = QueueHandler(self.log_queue)
        self.queue_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

        root_logger = logging.getLogger()
        root_logger.addHandler(self.queue_handler)
        root_logger.setLevel(logging.INFO)

    def _process_log_queue(self):
        """Process messages from the log queue and display them."""
        while True:
            try:
                message = self.log_queue.get_nowait()
            except queue.Empty:
                break

            level = "INFO"
            if message.startswith("WARNING:"):
                level = "WARNING"
            elif message.startswith("ERROR:"):
                level = "ERROR"
            elif message.startswith("DEBUG:"):
                level = "DEBUG"

            clean_message = re.sub(r"^(INFO|WARNING|ERROR|DEBUG):\s*", "", message)
            self._log_message(clean_message, level)

        self.root.after(LOG_QUEUE_INTERVAL, self._process_log_queue)

    def _validate_inputs(self) -> bool:
        """Validate all input fields before starting."""
        errors = []

        if not self.target_files:
            errors.append("No target files selected")

        if self.mode_var.get() == "update":
            reference = Path(self.reference_var.get())
            if not self.reference_var.get() or not reference.exists():
                errors.append(f"Reference file not found: {reference}")

        config_path = Path(self.config_var.get())
        if not self.config_var.get() or not config_path.exists():
            errors.append(f"Material configuration not found: {config_path}")

        if not self.output_dir_var.get():
            errors.append("Output directory not specified")

        if errors:
            messagebox.showerror("Validation Error", "\n".join(errors))
            return False

        return True

    def _start_update(self):
        """Start the batch in a background thread."""
        if not self._validate_inputs():
            return

        config = UpdaterConfig(
            reference=Path(self.reference_var.get()) if self.reference_var.get() else None,
            targets=list(self.target_files),
            material_config=Path(self.config_var.get()),
            output_dir=Path(self.output_dir_var.get()),
            mode=self.mode_var.get(),
            model_label=self.model_var.get(),
            apply_variants=self.apply_variants_var.get(),
            apply_mood_rotation=self.mood_rotation_var.get(),
            jobs=int(self.jobs_var.get()),
            dry_run=self.dry_run_var.get(),
            verbose=self.verbose_var.get(),
        )

        self.start_btn.configure(state="disabled")
        self.cancel_btn.configure(state="normal")
        self.progress_bar.set(0)
        self.progress_label.configure(text="Processing...")

        for label in self.stats_labels.values():
            label.configure(text="-")

        self.update_cancelled.clear()

        self.update_thread = threading.Thread(
            target=self._run_update_thread,
            args=(config,),
            daemon=True
        )
        self.update_thread.start()

        self._log_message("=" * 50)
        self._log_message(f"Starting {config.mode}: {len(config.targets)} file(s)")
        self._log_message("=" * 50)

    def _report_progress(self, value: float):
        """Progress callback, called from the worker thread."""
        self.root.after(0, self.progress_bar.set, value)

    def _run_update_thread(self, config: UpdaterConfig):
        """Run the batch in a background thread."""
        try:
            log_level = logging.DEBUG if config.verbose else logging.INFO
            logging.getLogger().setLevel(log_level)

            stats = run_batch(config, self._report_progress, self.update_cancelled)
            self.root.after(0, self._update_complete, stats, None)

        except Exception as e:
            logging.getLogger(__name__).exception("Batch run crashed")
            self.root.after(0, self._update_complete, None, str(e))

    def _update_complete(self, stats: UpdateStats | None, error: str | None):
        """Handle batch completion on the main thread."""
        self.start_btn.configure(state="normal")
        self.cancel_btn.configure(state="disabled")

        if error:
            self.progress_bar.set(0)
            self.progress_label.configure(text="Update failed!")
            self._log_message(f"ERROR: {error}", level="ERROR")
            messagebox.showerror("Update Failed", error)
            return

        if stats is None:
            return

        self.stats_labels["files"].configure(
            text=f"{stats.files_processed} of {stats.files_found} processed, {stats.files_skipped} skipped"
        )
        self.stats_labels["written"].configure(text=f"{stats.documents_written} file(s)")
        self.stats_labels["failed"].configure(text=str(len(stats.failures)))

        self._log_message("=" * 50)
        self._log_message("Update Cancelled" if stats.cancelled else "Update Complete!")
        self._log_message(f"  Processed: {stats.files_processed}")
        self._log_message(f"  Written: {stats.documents_written}")

        for err in stats.errors:
            self._log_message(f"  {err}", level="ERROR")

        if stats.warnings:
            self._log_message(f"  Warnings: {len(stats.warnings)}", level="WARNING")

        self._log_message("=" * 50)

        if stats.errors:
            self.progress_label.configure(text="Update failed!")
            messagebox.showerror("Update Failed", "\n".join(stats.errors))
        elif stats.failures:
            self.progress_label.configure(text="Completed with failed files")
            names = "\n".join(f"- {f.file_name}: {f.message}" for f in stats.failures[:10])
            messagebox.showwarning("Some Files Failed", f"{len(stats.failures)} file(s) failed:\n{names}")
        elif stats.cancelled:
            self.progress_label.configure(text="Cancelled")
        elif stats.warnings:
            self.progress_label.configure(text="Completed with warnings")
        else:
            self.progress_bar.set(1.0)
            self.progress_label.configure(text="Update successful!")

    def _cancel_update(self):
        """Request cancellation; the batch stops before its next chunk."""
        self.update_cancelled.set()
        self.progress_label.configure(text="Cancelling...")
        self._log_message("Cancellation requested...", level="WARNING")

    def run(self):
        """Start the application main loop."""
        self.root.mainloop()


# --- Main Entry Point ---

def main():
    """Main entry point for the GUI application."""
    app = MaterialUpdaterApp()
    app.run()


if __name__ == "__main__":
    main()
