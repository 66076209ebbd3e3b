# ui/main_window.py
import logging
from typing import Dict, List, Optional

from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QFileDialog,
    QSplitter, QToolBar, QLineEdit, QMessageBox, QComboBox, QScrollArea, QListWidget,
    QListWidgetItem, QInputDialog, QCheckBox
)
from PyQt6.QtGui import QAction, QActionGroup, QPixmap, QKeySequence, QShortcut
from PyQt6.QtCore import Qt, QPoint, QTimer

from models.annotation_models import Annotation
from models.geometry_models import Point, RectShape
from models.ocr_models import OcrResult
from models.workspace_models import PaneGeometry, PaneRect
from services.api_service import APIService
from services.bookmark_service import BookmarkService
from services.ocr_service import OcrService, area_progress_key
from services.storage_service import StorageService
from ui.components import ClickableLabel
from ui.handlers.annotation_handler import AnnotationHandler
from ui.handlers.drag_handler import DragHandler
from ui.handlers.drawing_handler import DrawingHandler
from ui.handlers.pdf_handler import PDFHandler
from ui.handlers.workspace_handler import WorkspaceHandler
from ui.widgets import (ClippingListWidget, CommentEditor, ConnectorOverlay,
                        PDFDisplayLabel, WorkspaceCanvas)
from utils.app_config import AppConfig

logger = logging.getLogger(__name__)

COMMENT_FLASH_COLOR = "#bef264"
CLIP_FLASH_COLOR = "#ffe58a"

TOOL_LABELS = [
    ("select", "選択"),
    ("highlight", "ハイライト"),
    ("underline", "下線"),
    ("strike", "取消線"),
    ("freehand", "フリーハンド"),
    ("comment", "付箋"),
    ("bookmark", "しおり"),
    ("clip", "クリップ"),
]

FILTER_LABELS = [
    ("highlight", "ハイライト"),
    ("underline", "下線"),
    ("strike", "取消線"),
    ("freehand", "フリーハンド"),
    ("comment", "付箋"),
]


class MainWindow(QMainWindow):
    """
    文書ペイン・クリップ一覧・ワークスペースを並べたアプリケーションのメインウィンドウ。

    サービスとハンドラを生成して互いのシグナルを接続し、ペインの配置が変わるたびに
    コネクタを再計算します。
    """
    def __init__(self, config: Optional[AppConfig] = None,
                 storage_service: Optional[StorageService] = None) -> None:
        super().__init__()
        self.config = config or AppConfig()
        self.setWindowTitle("ドキュメントワークスペース")
        self.setGeometry(50, 50, 1600, 1000)

        # --- サービス ---
        self.storage_service = storage_service or StorageService(self.config.data_dir)
        self.bookmark_service = BookmarkService(self.storage_service)
        self.api_service = APIService(self.config.api_base_url, self.config.api_token,
                                      self.config.api_timeout)
        self.ocr_service = OcrService(self.config, parent=self)
        self.server_annotations: Dict[int, List[Annotation]] = {}

        # --- ハンドラ ---
        self.annotation_handler = AnnotationHandler(self.storage_service, self)
        self.drawing_handler = DrawingHandler(self.annotation_handler, self.config, self)
        self.workspace_handler = WorkspaceHandler(self.storage_service, self.config, parent=self)
        self.drag_handler = DragHandler()
        self.pdf_handler = PDFHandler(self.ocr_service, self.config, self)
        self.drag_handler.register("annotation", self.annotation_handler.move_note)
        self.drag_handler.register("bookmark", self.bookmark_service.move)
        self.drag_handler.register("workspace_item", self.workspace_handler.move_item)

        self._connector_timer = QTimer(self)
        self._connector_timer.setSingleShot(True)
        self._connector_timer.setInterval(0)
        self._connector_timer.timeout.connect(self.refresh_connectors)

        self.left_toolbar = self.create_left_toolbar()
        self.addToolBar(Qt.ToolBarArea.LeftToolBarArea, self.left_toolbar)
        self.setup_toolbar_and_menu()
        self.create_central_area()
        self.create_status_bar()
        self.connect_signals()
        self.setup_shortcuts()

    def createPopupMenu(self):
        return None

    # ------------------------------------------------------------------
    # UI構築
    # ------------------------------------------------------------------
    def setup_toolbar_and_menu(self) -> None:
        toolbar = QToolBar("メインツールバー")
        self.addToolBar(Qt.ToolBarArea.TopToolBarArea, toolbar)
        toolbar.setStyleSheet("""
            QToolBar { spacing: 4px; }
            QPushButton, QToolButton {
                background-color: #f0f0f0;
                border: 1px solid #c0c0c0;
                padding: 5px 10px;
                border-radius: 4px;
            }
            QPushButton:checked, QToolButton:checked {
                background-color: #cde;
                border: 1px solid #9ac;
            }
        """)

        self.open_pdf_button = QPushButton("PDFを開く")
        toolbar.addWidget(self.open_pdf_button)
        self.document_label = QLabel("PDFファイルを開いてください...")
        toolbar.addWidget(self.document_label)
        toolbar.addSeparator()

        toolbar.addWidget(QLabel("色:"))
        self.color_combo = QComboBox()
        toolbar.addWidget(self.color_combo)
        toolbar.addWidget(QLabel("太さ:"))
        self.brush_combo = QComboBox()
        for size in self.config.brush_sizes:
            self.brush_combo.addItem(f"{size:g}", size)
        self.brush_combo.setCurrentIndex(max(0, self.brush_combo.findData(self.config.default_brush_size)))
        toolbar.addWidget(self.brush_combo)
        toolbar.addWidget(QLabel("不透明度:"))
        self.opacity_combo = QComboBox()
        for opacity in (1.0, 0.75, 0.5, 0.25):
            self.opacity_combo.addItem(f"{int(opacity * 100)}%", opacity)
        self.opacity_combo.setCurrentIndex(max(0, self.opacity_combo.findData(self.config.default_opacity)))
        toolbar.addWidget(self.opacity_combo)
        self.straight_check = QCheckBox("直線")
        self.pressure_check = QCheckBox("筆圧")
        self.pending_check = QCheckBox("まとめてコメント")
        self.snap_check = QCheckBox("テキストに沿う")
        self.freehand_comment_check = QCheckBox("手書きコメント")
        for check in (self.straight_check, self.pressure_check, self.pending_check,
                      self.snap_check, self.freehand_comment_check):
            toolbar.addWidget(check)
        toolbar.addSeparator()

        self.ocr_page_button = QPushButton("このページをOCR")
        self.ocr_all_button = QPushButton("全ページOCR")
        toolbar.addWidget(self.ocr_page_button)
        toolbar.addWidget(self.ocr_all_button)
        toolbar.addSeparator()

        self.search_input = QLineEdit()
        self.search_input.setPlaceholderText("文書内を検索...")
        self.search_input.setFixedWidth(200)
        toolbar.addWidget(self.search_input)
        toolbar.addSeparator()

        self.sync_button = QPushButton("サーバーに保存")
        self.sync_button.setEnabled(self.api_service.is_available())
        toolbar.addWidget(self.sync_button)
        self._update_color_choices()

    def create_left_toolbar(self) -> QToolBar:
        left_toolbar = QToolBar("PDFツール")
        left_toolbar.setOrientation(Qt.Orientation.Vertical)
        left_toolbar.setMovable(False)
        left_toolbar.setStyleSheet("QToolButton { padding: 8px 4px; font-size: 10pt; } QToolBar { spacing: 2px; }")
        left_toolbar.setToolButtonStyle(Qt.ToolButtonStyle.ToolButtonTextUnderIcon)

        self.tool_group = QActionGroup(self)
        self.tool_group.setExclusive(True)
        self.tool_actions: Dict[str, QAction] = {}
        for tool, label in TOOL_LABELS:
            action = QAction(label, self)
            action.setCheckable(True)
            action.setData(tool)
            self.tool_group.addAction(action)
            left_toolbar.addAction(action)
            self.tool_actions[tool] = action
        self.tool_actions["select"].setChecked(True)
        left_toolbar.addSeparator()

        self.zoom_in_action = QAction("拡大", self)
        self.zoom_out_action = QAction("縮小", self)
        self.zoom_reset_action = QAction("100%", self)
        left_toolbar.addAction(self.zoom_in_action)
        left_toolbar.addAction(self.zoom_out_action)
        left_toolbar.addAction(self.zoom_reset_action)

        page_widget = QWidget()
        page_layout = QVBoxLayout(page_widget)
        page_layout.setContentsMargins(0, 0, 0, 0); page_layout.setSpacing(0)
        self.page_num_input = QLineEdit(); self.page_num_input.setFixedWidth(50)
        self.page_num_input.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.page_label = QLabel("/ -"); self.page_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        page_layout.addWidget(self.page_num_input)
        page_layout.addWidget(self.page_label)

        left_toolbar.addSeparator()
        left_toolbar.addWidget(page_widget)

        self.goto_first_action = QAction("|<", self)
        self.prev_page_action = QAction("<", self)
        self.next_page_action = QAction(">", self)
        self.goto_last_action = QAction(">|", self)
        left_toolbar.addAction(self.goto_first_action)
        left_toolbar.addAction(self.prev_page_action)
        left_toolbar.addAction(self.next_page_action)
        left_toolbar.addAction(self.goto_last_action)
        return left_toolbar

    def create_central_area(self) -> None:
        self.central_container = QWidget()
        container_layout = QHBoxLayout(self.central_container)
        container_layout.setContentsMargins(0, 0, 0, 0)

        self.main_splitter = QSplitter(Qt.Orientation.Horizontal)
        self._configure_splitter(self.main_splitter)
        self.main_splitter.addWidget(self.create_clipping_area())
        self.main_splitter.addWidget(self.create_document_area())
        self.workspace_canvas = WorkspaceCanvas(self.workspace_handler, self.drag_handler)
        self.main_splitter.addWidget(self.workspace_canvas)
        self.main_splitter.setSizes([300, 800, 500])
        container_layout.addWidget(self.main_splitter)
        self.setCentralWidget(self.central_container)

        self.connector_overlay = ConnectorOverlay(self.central_container)
        self.connector_overlay.setGeometry(self.central_container.rect())
        self.connector_overlay.raise_()

    def create_clipping_area(self) -> QWidget:
        area = QWidget()
        layout = QVBoxLayout(area)
        layout.addWidget(QLabel("クリップ"))
        self.clipping_list = ClippingListWidget(self.workspace_handler)
        layout.addWidget(self.clipping_list, 2)

        buttons = QHBoxLayout()
        self.move_up_button = QPushButton("↑")
        self.move_down_button = QPushButton("↓")
        self.combine_button = QPushButton("結合")
        self.remove_clip_button = QPushButton("削除")
        for button in (self.move_up_button, self.move_down_button, self.combine_button, self.remove_clip_button):
            buttons.addWidget(button)
        layout.addLayout(buttons)

        filter_row = QHBoxLayout()
        self.filter_checks: Dict[str, QCheckBox] = {}
        for annotation_type, label in FILTER_LABELS:
            check = QCheckBox(label)
            check.setChecked(self.annotation_handler.is_type_visible(annotation_type))
            self.filter_checks[annotation_type] = check
            filter_row.addWidget(check)
        layout.addLayout(filter_row)

        layout.addWidget(QLabel("検索結果"))
        self.search_results = QListWidget()
        layout.addWidget(self.search_results, 1)

        self.comment_editor = CommentEditor(self.annotation_handler)
        layout.addWidget(self.comment_editor)
        return area

    def create_document_area(self) -> QWidget:
        self.pdf_display_label = PDFDisplayLabel(self)
        self.pdf_display_label.setText("「PDFを開く」からファイルを選択してください")
        self.pdf_display_label.setCursor(Qt.CursorShape.ArrowCursor)

        self.pdf_scroll_area = QScrollArea()
        self.pdf_scroll_area.setWidgetResizable(False)
        self.pdf_scroll_area.setAlignment(Qt.AlignmentFlag.AlignHCenter | Qt.AlignmentFlag.AlignTop)
        self.pdf_scroll_area.setStyleSheet("QScrollArea { background: #ffffff; border: none; }")
        self.pdf_scroll_area.setWidget(self.pdf_display_label)
        return self.pdf_scroll_area

    def create_status_bar(self) -> None:
        self.ocr_status_label = ClickableLabel("")
        self.ocr_status_label.setToolTip("クリックして表示中のページをOCR")
        self.statusBar().addPermanentWidget(self.ocr_status_label)

    def _configure_splitter(self, splitter: QSplitter) -> None:
        splitter.setHandleWidth(8)
        splitter.setStyleSheet(
            """
            QSplitter::handle {
                background-color: #d0d8ec;
                border: 1px solid #7f91c8;
            }
            QSplitter::handle:hover {
                background-color: #b0bee6;
            }
            """
        )

    def connect_signals(self) -> None:
        self.open_pdf_button.clicked.connect(self.open_pdf_file)
        self.tool_group.triggered.connect(self.on_tool_selected)
        self.color_combo.currentIndexChanged.connect(self._on_color_changed)
        self.brush_combo.currentIndexChanged.connect(
            lambda _: self.drawing_handler.set_brush_size(self.brush_combo.currentData()))
        self.opacity_combo.currentIndexChanged.connect(
            lambda _: self.drawing_handler.set_opacity(self.opacity_combo.currentData()))
        self.straight_check.toggled.connect(
            lambda checked: self.drawing_handler.set_freehand_mode("straight" if checked else "freehand"))
        self.pressure_check.toggled.connect(self.drawing_handler.set_pressure_enabled)
        self.pending_check.toggled.connect(self._set_pending_mode)
        self.snap_check.toggled.connect(self._set_snap_to_text)
        self.freehand_comment_check.toggled.connect(self._set_freehand_comment_mode)
        self.ocr_page_button.clicked.connect(self.run_ocr_on_current_page)
        self.ocr_all_button.clicked.connect(self.run_ocr_on_all_pages)
        self.ocr_status_label.clicked.connect(self.run_ocr_on_current_page)
        self.search_input.returnPressed.connect(self.run_search)
        self.search_results.itemActivated.connect(self._on_search_result_activated)
        self.search_results.itemClicked.connect(self._on_search_result_activated)
        self.sync_button.clicked.connect(self.save_to_server)

        self.zoom_in_action.triggered.connect(self.pdf_handler.zoom_in)
        self.zoom_out_action.triggered.connect(self.pdf_handler.zoom_out)
        self.zoom_reset_action.triggered.connect(self.pdf_handler.reset_zoom)
        self.prev_page_action.triggered.connect(self.pdf_handler.show_prev_page)
        self.next_page_action.triggered.connect(self.pdf_handler.show_next_page)
        self.goto_first_action.triggered.connect(lambda: self.pdf_handler.show_page(1))
        self.goto_last_action.triggered.connect(lambda: self.pdf_handler.show_page(self.pdf_handler.total_pages))
        self.page_num_input.returnPressed.connect(
            lambda: self.pdf_handler.goto_page_from_input(self.page_num_input.text()))

        self.move_up_button.clicked.connect(lambda: self._reorder_current_clipping(-1))
        self.move_down_button.clicked.connect(lambda: self._reorder_current_clipping(1))
        self.combine_button.clicked.connect(self.combine_clippings)
        self.remove_clip_button.clicked.connect(self._remove_current_clipping)
        for annotation_type, check in self.filter_checks.items():
            check.toggled.connect(
                lambda checked, t=annotation_type: self.annotation_handler.set_type_visible(t, checked))

        self.pdf_handler.document_opened.connect(self._on_document_opened)
        self.pdf_handler.page_changed.connect(self._on_page_changed)
        self.pdf_handler.zoom_changed.connect(lambda _: self.render_current_page())

        self.annotation_handler.annotations_changed.connect(self._on_annotations_changed)
        self.annotation_handler.selection_changed.connect(self.pdf_display_label.update)
        self.drawing_handler.drawing_changed.connect(self.pdf_display_label.update)
        self.drawing_handler.area_selected.connect(self.on_area_selected)
        self.drawing_handler.comment_requested.connect(lambda _: self.comment_editor.input_edit.setFocus())
        self.drawing_handler.workspace_comment_requested.connect(self.on_workspace_comment_requested)

        self.ocr_service.area_extracted.connect(self.on_area_extracted)
        self.ocr_service.progress_changed.connect(self.update_ocr_status)
        self.ocr_service.page_finished.connect(self._on_ocr_page_finished)
        self.ocr_service.all_pages_finished.connect(
            lambda count: self.statusBar().showMessage(f"{count} ページのOCRが完了しました", 5000))
        self.ocr_service.worker_init_failed.connect(self._on_ocr_worker_failed)

        self.workspace_handler.workspace_changed.connect(self.schedule_connector_refresh)
        self.workspace_handler.connectors_changed.connect(
            lambda: self.connector_overlay.set_connectors(self.workspace_handler.connectors))
        self.workspace_canvas.item_clicked.connect(self.focus_workspace_item)
        self.workspace_canvas.clipping_dropped.connect(self.on_clipping_dropped)

        self.pdf_scroll_area.horizontalScrollBar().valueChanged.connect(self.schedule_connector_refresh)
        self.pdf_scroll_area.verticalScrollBar().valueChanged.connect(self.schedule_connector_refresh)
        self.main_splitter.splitterMoved.connect(lambda *_: self.schedule_connector_refresh())

    def setup_shortcuts(self) -> None:
        self.prev_shortcut = QShortcut(QKeySequence(Qt.Key.Key_PageUp), self)
        self.prev_shortcut.activated.connect(self.pdf_handler.show_prev_page)
        self.next_shortcut = QShortcut(QKeySequence(Qt.Key.Key_PageDown), self)
        self.next_shortcut.activated.connect(self.pdf_handler.show_next_page)
        self.cancel_shortcut = QShortcut(QKeySequence(Qt.Key.Key_Escape), self)
        self.cancel_shortcut.activated.connect(self._cancel_interaction)

    # ------------------------------------------------------------------
    # 文書
    # ------------------------------------------------------------------
    def open_pdf_file(self) -> None:
        """ファイルダイアログでPDFを選択して開く。"""
        file_path, _ = QFileDialog.getOpenFileName(self, "PDFファイルを開く", "", "PDF Files (*.pdf)")
        if not file_path:
            return
        self.annotation_handler.reset()
        self.drawing_handler.cancel()
        if not self.pdf_handler.open_pdf_file(file_path):
            QMessageBox.critical(self, "PDFエラー", "PDFファイルを開けませんでした。")

    def _on_document_opened(self, page_count: int) -> None:
        self.document_label.setText(self.pdf_handler.document_name or "文書")
        self.page_label.setText(f"/ {page_count}")
        self.server_annotations = self.api_service.fetch_annotations(self.config.pdf_id)

    def _on_page_changed(self, page_number: int) -> None:
        self.drawing_handler.cancel()
        self.drag_handler.end()
        self.annotation_handler.load_page(page_number)
        self.page_num_input.setText(str(page_number))
        self.page_label.setText(f"/ {self.pdf_handler.total_pages}")
        self.render_current_page()
        self.update_ocr_status()

    def render_current_page(self) -> None:
        """表示中のページを、ビューポートの幅に合わせた倍率とズーム率で描画する。"""
        size = self.pdf_handler.page_size()
        if size is None or size.width <= 0:
            return
        viewport = self.pdf_scroll_area.viewport()
        base_scale = max(0.1, (viewport.width() - 16) / size.width) if viewport.width() > 0 else 1.0
        window = self.windowHandle()
        dpr = window.devicePixelRatio() if window else 1.0
        image = self.pdf_handler.render_current_page(base_scale, dpr)
        if image is None:
            return
        pixmap = QPixmap.fromImage(image)
        pixmap.setDevicePixelRatio(dpr)
        self.pdf_display_label.setPixmap(pixmap)
        self.pdf_display_label.adjustSize()
        self.schedule_connector_refresh()

    def _on_annotations_changed(self, page_number: int) -> None:
        if page_number == self.pdf_handler.current_page:
            self.pdf_display_label.update()

    # ------------------------------------------------------------------
    # ツール
    # ------------------------------------------------------------------
    def on_tool_selected(self, action: QAction) -> None:
        self.drawing_handler.set_tool(action.data())
        self._update_color_choices()
        cursor = Qt.CursorShape.ArrowCursor if action.data() == "select" else Qt.CursorShape.CrossCursor
        self.pdf_display_label.setCursor(cursor)

    def _update_color_choices(self) -> None:
        palette = (self.config.freehand_colors if self.drawing_handler.current_tool == "freehand"
                   else self.config.highlight_colors)
        current = self.drawing_handler.active_color
        self.color_combo.blockSignals(True)
        self.color_combo.clear()
        for color in palette:
            self.color_combo.addItem(color, color)
        self.color_combo.setCurrentIndex(max(0, self.color_combo.findData(current)))
        self.color_combo.blockSignals(False)

    def _on_color_changed(self, _index: int) -> None:
        color = self.color_combo.currentData()
        if color:
            self.drawing_handler.set_color(color)

    def _set_pending_mode(self, enabled: bool) -> None:
        self.drawing_handler.pending_mode = enabled

    def _set_snap_to_text(self, enabled: bool) -> None:
        self.drawing_handler.snap_to_text = enabled

    def _set_freehand_comment_mode(self, enabled: bool) -> None:
        self.drawing_handler.freehand_comment_mode = enabled

    def _cancel_interaction(self) -> None:
        self.drawing_handler.cancel()
        if self.drag_handler.end() is not None:
            self.pdf_display_label.releaseMouse()
        self.annotation_handler.clear_selection()

    # ------------------------------------------------------------------
    # クリップ・OCR
    # ------------------------------------------------------------------
    def on_area_selected(self, page_number: int, rect: RectShape) -> None:
        """クリップ範囲が確定した際の処理。テキストレイヤーが無ければOCRで抽出する。"""
        rasterizer = self.pdf_handler.rasterizer
        text = rasterizer.text_in_rect(page_number, rect) if rasterizer is not None else None
        if text:
            self.workspace_handler.add_clipping(text, page_number, rect, source="PDF")
            self.statusBar().showMessage("テキストをクリップしました", 3000)
            return
        if not self.ocr_service.extract_text_from_area(page_number, rect):
            self.statusBar().showMessage("テキスト抽出を開始できませんでした", 3000)

    def on_area_extracted(self, page_number: int, rect: RectShape, result: Optional[OcrResult]) -> None:
        if result is None:
            self.statusBar().showMessage("範囲からテキストを抽出できませんでした", 3000)
            return
        self.workspace_handler.add_ocr_clipping(page_number, rect, result)
        self.statusBar().showMessage(f"OCRでクリップしました (信頼度 {result.confidence}%)", 3000)

    def on_workspace_comment_requested(self, page_number: int, rect: RectShape) -> None:
        text, ok = QInputDialog.getMultiLineText(self, "ワークスペースコメント", "コメントを入力してください:")
        if not ok:
            return
        self.workspace_handler.create_workspace_comment(
            page_number, rect, text, source_type="freehand", color=self.drawing_handler.freehand_color,
        )

    def combine_clippings(self) -> None:
        if self.workspace_handler.combine_clippings() is None:
            QMessageBox.information(self, "結合", "結合するクリップを2つ以上選択してください。")

    def _reorder_current_clipping(self, direction: int) -> None:
        clipping_id = self.clipping_list.current_clipping_id()
        if clipping_id:
            self.workspace_handler.reorder_clipping(clipping_id, direction)

    def _remove_current_clipping(self) -> None:
        clipping_id = self.clipping_list.current_clipping_id()
        if clipping_id:
            self.workspace_handler.remove_clipping(clipping_id)

    def run_ocr_on_current_page(self) -> None:
        if not self.ocr_service.run_ocr_on_page(self.pdf_handler.current_page):
            self.statusBar().showMessage("OCRを開始できませんでした（実行中または文書未選択）", 3000)

    def run_ocr_on_all_pages(self) -> None:
        if not self.ocr_service.run_ocr_on_all_pages():
            self.statusBar().showMessage("OCRを開始できませんでした（実行中または文書未選択）", 3000)

    def update_ocr_status(self) -> None:
        page_number = self.pdf_handler.current_page
        progress = (self.ocr_service.progress.get(page_number)
                    or self.ocr_service.progress.get(area_progress_key(page_number)))
        if progress is not None:
            self.ocr_status_label.setText(f"OCR: {progress.status} ({progress.progress}%)")
            return
        result = self.ocr_service.results.get(page_number)
        if result is not None:
            self.ocr_status_label.setText(f"OCR済み (信頼度 {result.confidence}%)")
        else:
            self.ocr_status_label.setText("")

    def _on_ocr_page_finished(self, page_number: int, result: Optional[OcrResult]) -> None:
        if page_number == self.pdf_handler.current_page:
            self.update_ocr_status()

    def _on_ocr_worker_failed(self, message: str) -> None:
        QMessageBox.warning(self, "OCR", f"OCRエンジンを初期化できませんでした。\n{message}")

    # ------------------------------------------------------------------
    # 検索
    # ------------------------------------------------------------------
    def run_search(self) -> None:
        self.search_results.clear()
        page_texts = self.pdf_handler.page_texts()
        for hit in self.ocr_service.search(self.search_input.text(), page_texts):
            item = QListWidgetItem(f"p.{hit.page_number} [{hit.source}] {hit.snippet}")
            item.setData(Qt.ItemDataRole.UserRole, hit.page_number)
            self.search_results.addItem(item)
        missing = self.ocr_service.pages_without_text(page_texts)
        if missing:
            self.statusBar().showMessage(
                f"テキストの無いページが {len(missing)} ページあります。全ページOCRで検索対象にできます。", 5000)

    def _on_search_result_activated(self, item: QListWidgetItem) -> None:
        self.pdf_handler.show_page(item.data(Qt.ItemDataRole.UserRole))

    # ------------------------------------------------------------------
    # ワークスペース・コネクタ
    # ------------------------------------------------------------------
    def on_clipping_dropped(self, clipping_id: str, position: Point) -> None:
        if self.workspace_handler.place_item("clip", clipping_id, position) is None:
            return
        page_number = self.workspace_handler.drop_target_page(clipping_id)
        if page_number:
            self.pdf_handler.show_page(page_number)

    def focus_workspace_item(self, item_id: str) -> None:
        """ワークスペースアイテムの抽出元ページを表示し、抽出元を一時的に強調する。"""
        target = self.workspace_handler.focus_target(item_id, self.pdf_handler.current_page)
        if target is None:
            return
        item = self.workspace_handler.find_item(item_id)
        color = COMMENT_FLASH_COLOR if item is not None and item.type == "comment" else CLIP_FLASH_COLOR
        self.pdf_handler.show_page(target.page_number)
        self.pdf_display_label.flash(target.rect, color, self.config.flash_ms)

    def pane_geometry(self) -> Optional[PaneGeometry]:
        """コネクタ計算用に、各ペインの現在の矩形を共通の座標系で返す。"""
        width, height = self.pdf_display_label.page_size()
        if width <= 0 or height <= 0:
            return None
        doc = self.pdf_display_label.mapToGlobal(QPoint(0, 0))
        ws = self.workspace_canvas.mapToGlobal(QPoint(0, 0))
        origin = self.connector_overlay.mapToGlobal(QPoint(0, 0))
        return PaneGeometry(
            document=PaneRect(doc.x(), doc.y(), width, height),
            workspace=PaneRect(ws.x(), ws.y(), self.workspace_canvas.width(), self.workspace_canvas.height()),
            origin=PaneRect(origin.x(), origin.y(), self.connector_overlay.width(), self.connector_overlay.height()),
        )

    def schedule_connector_refresh(self, *_args) -> None:
        self._connector_timer.start()

    def refresh_connectors(self) -> None:
        self.workspace_handler.refresh_connectors(self.pdf_handler.current_page, self.pane_geometry())

    # ------------------------------------------------------------------
    # サーバー同期
    # ------------------------------------------------------------------
    def save_to_server(self) -> None:
        if not self.pdf_handler.is_open:
            return
        self.annotation_handler.load_pages(range(1, self.pdf_handler.total_pages + 1))
        report = self.api_service.save_annotations(
            self.config.pdf_id,
            self.pdf_handler.total_pages,
            self.server_annotations,
            self.annotation_handler.annotations,
            self.annotation_handler.pending,
        )
        if report.ok:
            self.statusBar().showMessage(f"{len(report.saved)} ページ分の注釈を保存しました", 5000)
        else:
            pages = ", ".join(str(p) for p in report.failed)
            QMessageBox.warning(self, "保存", f"次のページの保存に失敗しました: {pages}")

    # ------------------------------------------------------------------
    # ウィンドウイベント
    # ------------------------------------------------------------------
    def resizeEvent(self, event) -> None:
        super().resizeEvent(event)
        self.connector_overlay.setGeometry(self.central_container.rect())
        if self.pdf_handler.is_open:
            self.render_current_page()
        self.schedule_connector_refresh()

    def closeEvent(self, event) -> None:
        self.comment_editor.teardown()
        self.drawing_handler.cancel()
        self.drag_handler.end()
        self.ocr_service.shutdown()
        self.pdf_handler.close_document()
        event.accept()
