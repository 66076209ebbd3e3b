# utils/pdf_utils.py
"""PDFのレンダリングやテキストレイヤーの参照など、PDF操作に関連するユーティリティ機能を提供します。"""
from dataclasses import dataclass
from typing import List, Optional, Tuple

import fitz  # PyMuPDF
from PIL import Image
from PyQt6.QtGui import QImage

from models.geometry_models import RectShape
from utils.geometry import clamp


class PDFUtils:
    """PDF処理に関する共通機能を提供するユーティリティクラス。"""

    @staticmethod
    def render_page(page: fitz.Page, scale: float = 2.0) -> QImage:
        """PDFの指定されたページをQImageオブジェクトにレンダリングする。

        Args:
            page (fitz.Page): レンダリング対象のPyMuPDFページオブジェクト。
            scale (float): レンダリング時の拡大率。大きいほど高解像度になる。

        Returns:
            QImage: レンダリングされたページのQImageオブジェクト。
        """
        matrix = fitz.Matrix(scale, scale)
        pix = page.get_pixmap(matrix=matrix)

        if pix.alpha:
            image_format = QImage.Format.Format_RGBA8888
        else:
            image_format = QImage.Format.Format_RGB888

        qimage = QImage(pix.samples, pix.width, pix.height, pix.stride, image_format)

        # メモリリークを避けるため、データをコピーして返す
        return qimage.copy()


@dataclass
class RasterHandle:
    """ラスタライズ結果。OCRワーカーに渡す画像とそのピクセルサイズ。"""
    width: int
    height: int
    image: Image.Image


class PageRasterizer:
    """開いているPDF文書のページを画像化し、テキストレイヤーを参照するクラス。

    ページ番号はすべて1始まりで扱います。
    """

    def __init__(self, doc: fitz.Document) -> None:
        self.doc = doc

    @property
    def page_count(self) -> int:
        return self.doc.page_count

    def _page(self, page_number: int) -> fitz.Page:
        if not 1 <= page_number <= self.doc.page_count:
            raise IndexError(f"ページ番号が範囲外です: {page_number}")
        return self.doc.load_page(page_number - 1)

    @staticmethod
    def _to_handle(pix: fitz.Pixmap) -> RasterHandle:
        mode = "RGBA" if pix.alpha else "RGB"
        image = Image.frombytes(mode, [pix.width, pix.height], pix.samples)
        return RasterHandle(width=pix.width, height=pix.height, image=image)

    def render_page(self, page_number: int, scale: float = 2.0) -> RasterHandle:
        """ページ全体を指定倍率で画像化する。"""
        page = self._page(page_number)
        pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        return self._to_handle(pix)

    def render_area(self, page_number: int, rect: RectShape, scale: float = 2.0) -> RasterHandle:
        """正規化矩形で指定したページ領域だけを画像化する。

        Args:
            page_number (int): ページ番号。
            rect (RectShape): 切り抜く範囲（正規化座標）。
            scale (float): 拡大率。

        Returns:
            RasterHandle: 切り抜いた領域の画像。
        """
        page = self._page(page_number)
        clip = self.to_page_rect(page, rect)
        pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), clip=clip, alpha=False)
        return self._to_handle(pix)

    @staticmethod
    def to_page_rect(page: fitz.Page, rect: RectShape) -> fitz.Rect:
        """正規化矩形をページ座標系（ポイント）の fitz.Rect に変換する。"""
        bounds = page.rect
        x0 = bounds.x0 + clamp(rect.x, 0.0, 1.0) * bounds.width
        y0 = bounds.y0 + clamp(rect.y, 0.0, 1.0) * bounds.height
        x1 = bounds.x0 + clamp(rect.x + rect.width, 0.0, 1.0) * bounds.width
        y1 = bounds.y0 + clamp(rect.y + rect.height, 0.0, 1.0) * bounds.height
        return fitz.Rect(x0, y0, x1, y1)

    def page_text(self, page_number: int) -> str:
        """ページのテキストレイヤーを返す。スキャン画像のみのページでは空文字列。"""
        return self._page(page_number).get_text("text")

    def words_in_rect(self, page_number: int, rect: RectShape) -> List[Tuple[RectShape, str]]:
        """正規化矩形と重なる単語を、正規化座標の矩形付きで返す。

        Returns:
            List[Tuple[RectShape, str]]: (単語矩形, 単語) のリスト。読み順に並びます。
        """
        page = self._page(page_number)
        bounds = page.rect
        area = self.to_page_rect(page, rect)
        result: List[Tuple[RectShape, str]] = []
        if bounds.width <= 0 or bounds.height <= 0:
            return result
        for x0, y0, x1, y1, word, *_ in page.get_text("words"):
            word_rect = fitz.Rect(x0, y0, x1, y1)
            if not word_rect.intersects(area):
                continue
            result.append((
                RectShape(
                    x=(x0 - bounds.x0) / bounds.width,
                    y=(y0 - bounds.y0) / bounds.height,
                    width=(x1 - x0) / bounds.width,
                    height=(y1 - y0) / bounds.height,
                ),
                word,
            ))
        return result

    def text_in_rect(self, page_number: int, rect: RectShape) -> Optional[str]:
        """矩形内のテキストレイヤーの文字列。何も無ければNone。"""
        words = [word for _, word in self.words_in_rect(page_number, rect)]
        text = " ".join(words).strip()
        return text or None
