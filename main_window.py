"""
main_window.py – SteamBeat main window.

Layout
------
  ┌──────────────────────────────────────────────────────┐
  │  Your Steam Library   [Sort ▾]  [Open HLTB] [Reload] │  ← TOP
  ├──────────────────────────────────────────────────────┤
  │  Game tree (QTreeWidget)                             │
  │    Game name        Playtime       Main Story        │
  │      └ Main Story / Main + Extras / Completionist /  │
  │        All Styles  (shown when the row is expanded)  │
  ├──────────────────────────────────────────────────────┤
  │  Progress bar (resolved / total)                     │  ← BOTTOM
  │  Status log (QPlainTextEdit, read-only)              │
  └──────────────────────────────────────────────────────┘

The window holds no engine state of its own: it renders whatever ViewState
the StatsWorker publishes and forwards user actions back to it.
"""

from __future__ import annotations

import datetime
from typing import Optional

from PySide6.QtCore import Qt, QUrl, Slot
from PySide6.QtGui import QDesktopServices
from PySide6.QtWidgets import (
    QComboBox,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QProgressBar,
    QPushButton,
    QStatusBar,
    QTreeWidget,
    QTreeWidgetItem,
    QVBoxLayout,
    QWidget,
)

from models.library_item import SortableItem
from services.aggregation_view import ViewState
from services.duration_parser import format_hours
from services.library_service import format_playtime
from services.sort_engine import SortMode
from services.stat_cache import StatCache
from workers.stats_worker import StatsWorker

# ── Colour palette ─────────────────────────────────────────────────────────────
_BG         = "#0f1117"
_BG2        = "#1a1d27"
_BG3        = "#22263a"
_ACCENT     = "#4f8ef7"
_ACCENT2    = "#7c5af0"
_TEXT       = "#e2e8f0"
_TEXT_DIM   = "#718096"
_ERROR      = "#fc8181"
_BORDER     = "#2d3748"

_STYLESHEET = f"""
QMainWindow, QWidget {{
    background-color: {_BG};
    color: {_TEXT};
    font-family: 'Segoe UI', 'Consolas', monospace;
    font-size: 13px;
}}

/* ── Game tree ──────────────────────────────────────────────────────────── */
QTreeWidget#gameTree {{
    background-color: {_BG2};
    border: 1px solid {_BORDER};
    border-radius: 6px;
    outline: none;
    padding: 4px;
}}
QTreeWidget#gameTree::item {{
    padding: 6px 8px;
}}
QTreeWidget#gameTree::item:selected {{
    background-color: {_ACCENT};
    color: white;
}}
QTreeWidget#gameTree::item:hover {{
    background-color: {_BG3};
}}
QHeaderView::section {{
    background-color: {_BG3};
    color: {_TEXT_DIM};
    border: none;
    padding: 6px;
}}

/* ── Sort dropdown ──────────────────────────────────────────────────────── */
QComboBox {{
    background-color: {_BG2};
    border: 1px solid {_BORDER};
    border-radius: 5px;
    padding: 6px 10px;
    min-width: 150px;
}}

/* ── Buttons ────────────────────────────────────────────────────────────── */
QPushButton {{
    background-color: {_BG3};
    border: 1px solid {_BORDER};
    border-radius: 5px;
    padding: 7px 14px;
    color: {_TEXT};
}}
QPushButton:hover {{
    background-color: {_ACCENT};
    border-color: {_ACCENT};
    color: white;
}}
QPushButton:pressed {{
    background-color: {_ACCENT2};
}}
QPushButton:disabled {{
    background: {_BG3};
    color: {_TEXT_DIM};
}}

/* ── Progress bar ───────────────────────────────────────────────────────── */
QProgressBar {{
    background-color: {_BG2};
    border: 1px solid {_BORDER};
    border-radius: 5px;
    text-align: center;
    color: {_TEXT};
    height: 18px;
}}
QProgressBar::chunk {{
    background: qlineargradient(x1:0, y1:0, x2:1, y2:0,
        stop:0 {_ACCENT}, stop:1 {_ACCENT2});
    border-radius: 4px;
}}

/* ── Log area ───────────────────────────────────────────────────────────── */
QPlainTextEdit#logArea {{
    background-color: {_BG2};
    border: 1px solid {_BORDER};
    border-radius: 6px;
    font-family: 'Consolas', monospace;
    font-size: 12px;
}}
"""

_DETAIL_ROWS = (
    ("Main Story", "main"),
    ("Main + Extras", "main_plus"),
    ("Completionist", "completionist"),
    ("All Styles", "all_styles"),
)

_ID_ROLE = Qt.ItemDataRole.UserRole


class MainWindow(QMainWindow):
    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("SteamBeat – Completion Times")
        self.resize(980, 720)
        self.setStyleSheet(_STYLESHEET)

        self._cache = StatCache()
        self._worker: Optional[StatsWorker] = None
        self._state = ViewState()
        self._rendering = False

        self._build_ui()
        self._connect_signals()
        self._start_worker(reload=False)

    # ── UI construction ───────────────────────────────────────────────────────

    def _build_ui(self) -> None:
        central = QWidget()
        self.setCentralWidget(central)
        root_layout = QVBoxLayout(central)
        root_layout.setContentsMargins(14, 14, 14, 10)
        root_layout.setSpacing(10)

        # ── Top bar ─────────────────────────────────────────────────────────
        top = QHBoxLayout()
        title = QLabel("Your Steam Library")
        title.setStyleSheet("font-size: 18px; font-weight: bold;")
        top.addWidget(title)
        top.addStretch()

        self._sort_combo = QComboBox()
        self._sort_combo.setToolTip("Sort by completion time")
        for mode in SortMode:
            self._sort_combo.addItem(mode.label, mode)
        top.addWidget(self._sort_combo)

        self._open_btn = QPushButton("Open on HowLongToBeat")
        self._open_btn.setEnabled(False)
        top.addWidget(self._open_btn)

        self._reload_btn = QPushButton("Reload")
        top.addWidget(self._reload_btn)
        root_layout.addLayout(top)

        # ── Game tree ───────────────────────────────────────────────────────
        self._tree = QTreeWidget()
        self._tree.setObjectName("gameTree")
        self._tree.setColumnCount(3)
        self._tree.setHeaderLabels(["Game", "Playtime", "Main Story"])
        self._tree.setUniformRowHeights(True)
        header = self._tree.header()
        header.setSectionResizeMode(0, QHeaderView.ResizeMode.Stretch)
        header.setSectionResizeMode(1, QHeaderView.ResizeMode.ResizeToContents)
        header.setSectionResizeMode(2, QHeaderView.ResizeMode.ResizeToContents)
        root_layout.addWidget(self._tree, stretch=1)

        # ── Bottom ──────────────────────────────────────────────────────────
        self._progress_bar = QProgressBar()
        self._progress_bar.setRange(0, 100)
        self._progress_bar.setValue(0)
        self._progress_bar.setFormat("Idle")
        self._progress_bar.setFixedHeight(20)
        root_layout.addWidget(self._progress_bar)

        self._log_area = QPlainTextEdit()
        self._log_area.setObjectName("logArea")
        self._log_area.setReadOnly(True)
        self._log_area.setMaximumBlockCount(500)
        self._log_area.setFixedHeight(110)
        root_layout.addWidget(self._log_area)

        self._status_bar = QStatusBar()
        self.setStatusBar(self._status_bar)

    # ── Signal wiring ─────────────────────────────────────────────────────────

    def _connect_signals(self) -> None:
        self._sort_combo.currentIndexChanged.connect(self._on_sort_changed)
        self._reload_btn.clicked.connect(self._on_reload)
        self._open_btn.clicked.connect(self._on_open_external)
        self._tree.itemExpanded.connect(self._on_item_toggled)
        self._tree.itemCollapsed.connect(self._on_item_toggled)
        self._tree.currentItemChanged.connect(self._on_current_changed)

    # ── Worker lifecycle ──────────────────────────────────────────────────────

    def _start_worker(self, *, reload: bool) -> None:
        self._stop_worker()
        worker = StatsWorker(
            self._cache,
            mode=self._current_mode(),
            reload=reload,
            parent=self,
        )
        worker.snapshot.connect(self._on_snapshot)
        worker.status.connect(self._on_worker_status)
        worker.error.connect(self._on_worker_error)
        self._worker = worker
        self._reload_btn.setEnabled(False)
        self._progress_bar.setRange(0, 0)  # indeterminate
        self._progress_bar.setFormat("Loading library…")
        worker.start()

    def _stop_worker(self) -> None:
        worker = self._worker
        self._worker = None
        if worker is None:
            return
        worker.snapshot.disconnect(self._on_snapshot)
        worker.status.disconnect(self._on_worker_status)
        worker.error.disconnect(self._on_worker_error)
        worker.stop()
        worker.wait()

    def closeEvent(self, event) -> None:  # noqa: N802
        self._stop_worker()
        super().closeEvent(event)

    # ── Slots ─────────────────────────────────────────────────────────────────

    @Slot(object)
    def _on_snapshot(self, state: ViewState) -> None:
        self._state = state
        self._render(state)
        self._update_progress(state)
        self._reload_btn.setEnabled(not state.loading)

    @Slot(int)
    def _on_sort_changed(self, _index: int) -> None:
        mode = self._current_mode()
        if self._worker is not None:
            self._worker.set_sort_mode(mode)
        self._log(f"Sorting: {mode.label}")

    @Slot()
    def _on_reload(self) -> None:
        self._log("Reloading library…")
        self._tree.clear()
        self._start_worker(reload=True)

    @Slot()
    def _on_open_external(self) -> None:
        row = self._selected_row()
        if row is None or row.bundle is None or not row.bundle.external_url:
            return
        QDesktopServices.openUrl(QUrl(row.bundle.external_url))

    @Slot(QTreeWidgetItem)
    def _on_item_toggled(self, item: QTreeWidgetItem) -> None:
        if self._rendering or self._worker is None:
            return
        identity = item.data(0, _ID_ROLE)
        if identity is None:
            return
        if item.isExpanded() != (identity in self._state.expanded):
            self._worker.toggle_expanded(identity)

    @Slot()
    def _on_current_changed(self) -> None:
        row = self._selected_row()
        self._open_btn.setEnabled(
            row is not None and row.bundle is not None and bool(row.bundle.external_url)
        )
        if row is not None:
            self._set_status(f"Selected: {row.name}")

    @Slot(str)
    def _on_worker_status(self, msg: str) -> None:
        self._log(msg)
        self._set_status(msg)

    @Slot(str)
    def _on_worker_error(self, msg: str) -> None:
        self._progress_bar.setRange(0, 100)
        self._progress_bar.setValue(0)
        self._progress_bar.setFormat("Error")
        self._reload_btn.setEnabled(True)
        self._log(msg, error=True)
        self._set_status("Library load failed.")
        QMessageBox.critical(self, "Steam Library", msg)

    # ── Rendering ─────────────────────────────────────────────────────────────

    def _render(self, state: ViewState) -> None:
        selected = self._selected_identity()
        scroll = self._tree.verticalScrollBar().value()
        self._rendering = True
        try:
            self._tree.clear()
            for row in state.rows:
                item = self._build_row(row)
                self._tree.addTopLevelItem(item)
                item.setExpanded(row.identity in state.expanded)
                if row.identity == selected:
                    self._tree.setCurrentItem(item)
        finally:
            self._rendering = False
        self._tree.verticalScrollBar().setValue(scroll)

    def _build_row(self, row: SortableItem) -> QTreeWidgetItem:
        badge = format_hours(row.main_hours) if row.main_hours is not None else ""
        item = QTreeWidgetItem(
            [row.name, format_playtime(row.item.playtime_minutes), badge]
        )
        item.setData(0, _ID_ROLE, row.identity)
        item.setToolTip(0, row.item.install_path or row.name)

        bundle = row.bundle
        if bundle is not None and bundle.has_data:
            for label, attr in _DETAIL_ROWS:
                child = QTreeWidgetItem([label, "", format_hours(getattr(bundle, attr))])
                child.setForeground(0, self._tree.palette().placeholderText())
                item.addChild(child)
        return item

    def _update_progress(self, state: ViewState) -> None:
        if state.loading:
            return
        if not state.total:
            self._progress_bar.setRange(0, 100)
            self._progress_bar.setValue(0)
            self._progress_bar.setFormat("Idle")
            return
        pct = int(state.resolved * 100 / state.total)
        self._progress_bar.setRange(0, 100)
        self._progress_bar.setValue(pct)
        self._progress_bar.setFormat(
            f"{state.resolved} / {state.total} games resolved  ({pct}%)"
        )

    # ── UI helpers ────────────────────────────────────────────────────────────

    def _current_mode(self) -> SortMode:
        mode = self._sort_combo.currentData()
        return mode if isinstance(mode, SortMode) else SortMode.ASCENDING

    def _selected_identity(self) -> Optional[str]:
        item = self._tree.currentItem()
        if item is None:
            return None
        if item.parent() is not None:
            item = item.parent()
        return item.data(0, _ID_ROLE)

    def _selected_row(self) -> Optional[SortableItem]:
        identity = self._selected_identity()
        if identity is None:
            return None
        for row in self._state.rows:
            if row.identity == identity:
                return row
        return None

    def _set_status(self, msg: str) -> None:
        self._status_bar.showMessage(msg)

    def _log(self, msg: str, *, error: bool = False) -> None:
        ts = datetime.datetime.now().strftime("%H:%M:%S")
        if error:
            prefix = f'<span style="color:{_ERROR}">[{ts}] ✗  {msg}</span>'
        else:
            prefix = f'<span style="color:{_TEXT_DIM}">[{ts}]  {msg}</span>'
        self._log_area.appendHtml(prefix)
        # Scroll to bottom.
        sb = self._log_area.verticalScrollBar()
        sb.setValue(sb.maximum())
