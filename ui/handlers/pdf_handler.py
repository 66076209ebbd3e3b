from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Dict, Optional

import fitz
from PyQt6.QtCore import QObject, pyqtSignal
from PyQt6.QtGui import QImage

from utils.app_config import AppConfig
from utils.geometry import clamp
from utils.pdf_utils import PageRasterizer, PDFUtils

if TYPE_CHECKING:
    from services.ocr_service import OcrService

logger = logging.getLogger(__name__)


class PDFHandler(QObject):
    """
    PDF文書の読み込み、ページ移動、ズームを担うハンドラクラス。

    ページ番号は1始まりです。ページを移動した際、まだOCR結果の無いページでは
    自動的にOCRを開始します（設定で無効化できます）。

    Signals:
        document_opened (pyqtSignal): 文書を開いた際に総ページ数を送信します。
        document_closed (pyqtSignal): 文書を閉じた際に通知します。
        page_changed (pyqtSignal): 表示ページが変わった際に新しいページ番号を送信します。
        zoom_changed (pyqtSignal): ズーム率が変わった際に新しい値を送信します。
    """
    document_opened = pyqtSignal(int)
    document_closed = pyqtSignal()
    page_changed = pyqtSignal(int)
    zoom_changed = pyqtSignal(float)

    MIN_ZOOM: float = 0.5
    MAX_ZOOM: float = 3.0
    ZOOM_STEP: float = 0.05

    def __init__(self, ocr_service: Optional[OcrService] = None, config: Optional[AppConfig] = None,
                 parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.ocr_service = ocr_service
        self.config = config or AppConfig()
        self.pdf_document: Optional[fitz.Document] = None
        self.rasterizer: Optional[PageRasterizer] = None
        self.current_pdf_path: Optional[str] = None
        self.current_page: int = 0
        self.total_pages: int = 0
        self.zoom_factor: float = 1.0

    @property
    def is_open(self) -> bool:
        return self.pdf_document is not None

    @property
    def document_name(self) -> str:
        return os.path.basename(self.current_pdf_path) if self.current_pdf_path else ""

    def open_pdf_file(self, file_path: str) -> bool:
        """PDFファイルを開いて1ページ目を表示する。

        Args:
            file_path (str): PDFファイルのパス。

        Returns:
            bool: 開けた場合はTrue。失敗した場合はログに記録してFalse。
        """
        try:
            document = fitz.open(file_path)
        except Exception as e:
            logger.error("PDFファイルを開けませんでした: %s (%s)", file_path, e)
            return False
        self.set_document(document, file_path)
        return True

    def set_document(self, document: fitz.Document, file_path: Optional[str] = None) -> None:
        """開いた文書を表示対象にする。前の文書は閉じる。"""
        self.close_document(emit=False)
        self.pdf_document = document
        self.current_pdf_path = file_path
        self.total_pages = document.page_count
        self.rasterizer = PageRasterizer(document)
        self.zoom_factor = 1.0
        if self.ocr_service is not None:
            self.ocr_service.set_rasterizer(self.rasterizer)
        logger.info("PDFを開きました: %s (%d ページ)", file_path or "<memory>", self.total_pages)
        self.document_opened.emit(self.total_pages)
        self.current_page = 0
        if self.total_pages:
            self.show_page(1)

    def close_document(self, emit: bool = True) -> None:
        if self.pdf_document is None:
            return
        self.pdf_document.close()
        self.pdf_document = None
        self.rasterizer = None
        self.current_pdf_path = None
        self.current_page = 0
        self.total_pages = 0
        if self.ocr_service is not None:
            self.ocr_service.set_rasterizer(None)
        if emit:
            self.document_closed.emit()

    # --- ページ移動 ---
    def show_page(self, page_number: int) -> bool:
        """指定されたページに移動する。範囲外の場合は何もしない。"""
        if self.pdf_document is None or not 1 <= page_number <= self.total_pages:
            return False
        changed = page_number != self.current_page
        self.current_page = page_number
        if changed:
            self.page_changed.emit(page_number)
        self._auto_ocr(page_number)
        return True

    def show_prev_page(self) -> bool:
        return self.show_page(self.current_page - 1)

    def show_next_page(self) -> bool:
        return self.show_page(self.current_page + 1)

    def goto_page_from_input(self, text: str) -> bool:
        """入力欄の文字列のページ番号にジャンプする。数値でなければ無視する。"""
        try:
            page_number = int(text.strip())
        except ValueError:
            return False
        return self.show_page(page_number)

    def _auto_ocr(self, page_number: int) -> None:
        service = self.ocr_service
        if service is None or not self.config.auto_ocr or service.is_running:
            return
        if page_number in service.results:
            return
        service.run_ocr_on_page(page_number)

    # --- ズーム ---
    def set_zoom(self, value: float) -> float:
        """ズーム率を 0.05 刻みに丸め、[0.5, 3.0] に収めて設定する。"""
        steps = round(value / self.ZOOM_STEP)
        zoom = round(clamp(steps * self.ZOOM_STEP, self.MIN_ZOOM, self.MAX_ZOOM), 2)
        if zoom != self.zoom_factor:
            self.zoom_factor = zoom
            self.zoom_changed.emit(zoom)
        return self.zoom_factor

    def zoom_in(self) -> float:
        return self.set_zoom(self.zoom_factor + self.ZOOM_STEP)

    def zoom_out(self) -> float:
        return self.set_zoom(self.zoom_factor - self.ZOOM_STEP)

    def reset_zoom(self) -> float:
        return self.set_zoom(1.0)

    # --- レンダリング・テキスト ---
    def render_current_page(self, base_scale: float = 1.0, dpr: float = 1.0) -> Optional[QImage]:
        """表示中のページを、ズーム率とデバイスピクセル比を反映してQImageにする。"""
        if self.pdf_document is None or not self.current_page:
            return None
        page = self.pdf_document.load_page(self.current_page - 1)
        return PDFUtils.render_page(page, base_scale * self.zoom_factor * dpr)

    def page_size(self, page_number: Optional[int] = None) -> Optional[fitz.Rect]:
        """ページの大きさ（ポイント）。"""
        page_number = page_number or self.current_page
        if self.pdf_document is None or not 1 <= page_number <= self.total_pages:
            return None
        return self.pdf_document.load_page(page_number - 1).rect

    def page_texts(self) -> Dict[int, str]:
        """全ページのテキストレイヤー。検索に使う。"""
        if self.rasterizer is None:
            return {}
        return {n: self.rasterizer.page_text(n) for n in range(1, self.total_pages + 1)}
