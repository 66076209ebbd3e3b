from __future__ import annotations
from typing import TYPE_CHECKING, Optional, Tuple

from PyQt6.QtCore import Qt, QPointF, QRectF, QTimer
from PyQt6.QtGui import (QPainter, QPen, QColor, QBrush, QPainterPath, QPainterPathStroker,
                         QMouseEvent, QPaintEvent, QInputDevice)
from PyQt6.QtWidgets import QLabel, QMenu, QInputDialog, QWidget

from models.annotation_models import Annotation
from models.geometry_models import FreehandShape, LineShape, Point, RectShape, Shape
from ui.handlers.drawing_handler import DRAWING_TOOLS
from utils.geometry import denormalize, is_degenerate, normalize, rect_from_points, shape_bounds

if TYPE_CHECKING:
    from ..main_window import MainWindow

NOTE_SIZE = 22
BOOKMARK_SIZE = 18
STROKE_SCALE = 0.3
SELECTION_COLOR = "#ff9800"
MARKUP_TOOLS = ("underline", "strike")

Hit = Tuple[str, str, Optional[int]]


class PDFDisplayLabel(QLabel):
    """
    PDFページ画像を表示し、ページ上のすべての注釈操作を処理するカスタムラベル。

    描画ツール（ハイライト・フリーハンド・範囲クリップ）のポインタ操作を DrawingHandler に渡し、
    付箋としおりのドラッグを DragHandler に渡します。ラベルの大きさは常にページ画像と一致させ、
    ウィジェット座標をそのままページのピクセル座標として扱います。
    """
    def __init__(self, main_window: MainWindow, parent: Optional[QWidget] = None) -> None:
        """
        PDFDisplayLabelのコンストラクタ。

        Args:
            main_window (MainWindow): ハンドラを保持するメインウィンドウ。
            parent (Optional[QWidget]): 親ウィジェット。
        """
        super().__init__(parent)
        self.main_window: MainWindow = main_window
        self.setAlignment(Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignTop)
        self.setMouseTracking(False)

        # --- 状態変数の型定義 ---
        self._markup_start: Optional[QPointF] = None
        self._markup_last: Optional[QPointF] = None
        self._flash_rect: Optional[RectShape] = None
        self._flash_color: QColor = QColor("#ffe58a")
        self._flash_timer = QTimer(self)
        self._flash_timer.setSingleShot(True)
        self._flash_timer.timeout.connect(self._clear_flash)

    # --- 座標 ---
    def page_size(self) -> Tuple[float, float]:
        """表示中のページ画像の論理サイズ（幅, 高さ）。"""
        pixmap = self.pixmap()
        if pixmap is None or pixmap.isNull():
            return 0.0, 0.0
        size = pixmap.deviceIndependentSize()
        return size.width(), size.height()

    def _has_page(self) -> bool:
        width, height = self.page_size()
        return width > 0 and height > 0

    def _contains(self, pos: QPointF) -> bool:
        width, height = self.page_size()
        return 0 <= pos.x() <= width and 0 <= pos.y() <= height

    def _normalized(self, pos: QPointF) -> Point:
        width, height = self.page_size()
        return Point(pos.x() / width, pos.y() / height)

    def _page(self) -> int:
        return self.main_window.pdf_handler.current_page

    @staticmethod
    def _pressure(event: QMouseEvent) -> Optional[float]:
        device = event.pointingDevice()
        if device is None or device.type() != QInputDevice.DeviceType.Stylus:
            return None
        return event.point(0).pressure()

    # --- マウスイベント ---
    def mousePressEvent(self, event: QMouseEvent) -> None:
        """
        マウスボタンが押されたときのイベントハンドラ。
        付箋・しおりのドラッグ開始、描画の開始、注釈の選択などを行う。
        """
        if not self._has_page() or not self._contains(event.position()):
            return super().mousePressEvent(event)

        pos = event.position()
        page = self._page()
        tool = self.main_window.drawing_handler.current_tool
        annotation_handler = self.main_window.annotation_handler

        if event.button() == Qt.MouseButton.RightButton:
            bookmark = self.main_window.bookmark_service.get(page)
            if bookmark is not None and self._marker_rect(bookmark.position, BOOKMARK_SIZE).contains(pos):
                self._show_bookmark_menu(event.globalPosition().toPoint(), page)
                event.accept()
                return
            hit = self._find_annotation_at(pos)
            if hit is not None:
                self._show_annotation_menu(event.globalPosition().toPoint(), hit)
            event.accept()
            return

        if event.button() != Qt.MouseButton.LeftButton:
            return super().mousePressEvent(event)

        if self._begin_marker_drag(pos, page, event):
            return

        if tool == "comment":
            self._create_note(pos, page)
            event.accept()
            return

        if tool == "bookmark":
            self.main_window.bookmark_service.toggle(page)
            self.update()
            event.accept()
            return

        if self._is_markup_tool(tool):
            self._markup_start = pos
            self._markup_last = pos
            event.accept()
            return

        hit = self._find_annotation_at(pos)
        if tool in DRAWING_TOOLS:
            width, height = self.page_size()
            started = self.main_window.drawing_handler.pointer_down(
                page, Point(pos.x(), pos.y()), (width, height),
                on_background=hit is None, pressure=self._pressure(event),
            )
            if started:
                self.grabMouse()
                event.accept()
                return

        if hit is None:
            annotation_handler.clear_selection()
        elif hit[0] == "pending":
            annotation_handler.select_pending(page, hit[2])
        else:
            annotation_handler.select_annotation(hit[1])
        event.accept()

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        """マウス移動イベント。ドラッグ中の対象や描画中の図形を更新する。"""
        if not self._has_page():
            return super().mouseMoveEvent(event)
        pos = event.position()
        drag_handler = self.main_window.drag_handler
        if drag_handler.is_dragging:
            drag_handler.move(self._normalized(pos))
            self.update()
            return
        drawing_handler = self.main_window.drawing_handler
        if drawing_handler.is_drawing:
            drawing_handler.pointer_move(Point(pos.x(), pos.y()), self._pressure(event))
            return
        if self._markup_start is not None:
            self._markup_last = pos
            self.update()
            return
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        """マウスボタンが離されたときのイベント。描画やドラッグを終了する。"""
        if event.button() != Qt.MouseButton.LeftButton:
            return super().mouseReleaseEvent(event)
        pos = event.position()
        drag_handler = self.main_window.drag_handler
        if drag_handler.is_dragging:
            drag_handler.end()
            self.releaseMouse()
            event.accept()
            return
        drawing_handler = self.main_window.drawing_handler
        if drawing_handler.is_drawing:
            self.releaseMouse()
            point = Point(pos.x(), pos.y()) if self._contains(pos) else None
            drawing_handler.pointer_up(point)
            event.accept()
            return
        if self._markup_start is not None:
            self._finish_markup(pos)
            event.accept()
            return
        super().mouseReleaseEvent(event)

    def _begin_marker_drag(self, pos: QPointF, page: int, event: QMouseEvent) -> bool:
        """付箋またはしおりの上で押された場合、ドラッグを開始する。"""
        drag_handler = self.main_window.drag_handler
        note = self._find_note_at(pos)
        if note is not None:
            self.main_window.annotation_handler.select_annotation(note.id)
            drag_handler.begin("annotation", note.id, self._normalized(pos), note.anchor, page_number=page)
        else:
            bookmark = self.main_window.bookmark_service.get(page)
            if bookmark is None or not self._marker_rect(bookmark.position, BOOKMARK_SIZE).contains(pos):
                return False
            drag_handler.begin("bookmark", bookmark.id, self._normalized(pos), bookmark.position,
                               page_number=page)
        self.grabMouse()
        event.accept()
        return True

    def _is_markup_tool(self, tool: str) -> bool:
        return tool in MARKUP_TOOLS or (tool == "highlight" and self.main_window.drawing_handler.snap_to_text)

    def _create_note(self, pos: QPointF, page: int) -> None:
        """指定された位置に付箋を作成する。"""
        text, ok = QInputDialog.getMultiLineText(self, "付箋", "付箋の内容を入力してください:")
        if ok:
            self.main_window.annotation_handler.add_note(page, self._normalized(pos), text)

    def _finish_markup(self, pos: QPointF) -> None:
        """ドラッグした範囲の単語にハイライト・下線・取り消し線を付ける。"""
        start = self._markup_start
        self._markup_start = None
        self._markup_last = None
        self.update()
        rasterizer = self.main_window.pdf_handler.rasterizer
        if start is None or rasterizer is None:
            return
        width, height = self.page_size()
        rect = normalize(rect_from_points(Point(start.x(), start.y()), Point(pos.x(), pos.y())),
                         width, height)
        if is_degenerate(rect):
            return
        page = self._page()
        words = rasterizer.words_in_rect(page, rect)
        if not words:
            self.main_window.statusBar().showMessage("選択範囲にテキストがありません。", 3000)
            return
        self.main_window.annotation_handler.add_text_markup(
            page, self.main_window.drawing_handler.current_tool,
            [r for r, _ in words], " ".join(w for _, w in words),
            color=self.main_window.drawing_handler.highlight_color,
        )

    # --- ヒットテスト ---
    def _marker_rect(self, position: Point, size: int) -> QRectF:
        width, height = self.page_size()
        return QRectF(position.x * width - size / 2, position.y * height - size / 2, size, size)

    def _find_note_at(self, pos: QPointF) -> Optional[Annotation]:
        for annotation in reversed(self.main_window.annotation_handler.visible_annotations(self._page())):
            if annotation.type == "comment" and annotation.anchor is not None:
                if self._marker_rect(annotation.anchor, NOTE_SIZE).contains(pos):
                    return annotation
        return None

    def _shape_path(self, shape: Shape) -> QPainterPath:
        width, height = self.page_size()
        shape = denormalize(shape, width, height)
        path = QPainterPath()
        if isinstance(shape, RectShape):
            path.addRect(QRectF(shape.x, shape.y, shape.width, shape.height))
        elif isinstance(shape, LineShape):
            path.moveTo(shape.x1, shape.y1)
            path.lineTo(shape.x2, shape.y2)
        elif isinstance(shape, FreehandShape) and shape.points:
            path.moveTo(shape.points[0].x, shape.points[0].y)
            for p in shape.points[1:]:
                path.lineTo(p.x, p.y)
        return path

    def _shape_hit(self, shape: Shape, pos: QPointF) -> bool:
        path = self._shape_path(shape)
        if isinstance(shape, RectShape):
            return path.contains(pos)
        stroker = QPainterPathStroker()
        stroker.setCapStyle(Qt.PenCapStyle.RoundCap)
        stroker.setJoinStyle(Qt.PenJoinStyle.RoundJoin)
        line_width = shape.stroke_width * STROKE_SCALE if isinstance(shape, FreehandShape) else 2
        stroker.setWidth(max(line_width, 10))
        return stroker.createStroke(path).contains(pos)

    def _find_annotation_at(self, pos: QPointF) -> Optional[Hit]:
        """指定された座標にある注釈またはペンディングを検索する。

        Returns:
            Optional[Hit]: ('annotation', 注釈ID, 図形インデックス) または ('pending', '', インデックス)。
        """
        page = self._page()
        handler = self.main_window.annotation_handler
        for index, shape in reversed(list(enumerate(handler.pending_for(page)))):
            if self._shape_hit(shape, pos):
                return "pending", "", index
        for annotation in reversed(handler.visible_annotations(page)):
            for index, shape in enumerate(annotation.shapes):
                if self._shape_hit(shape, pos):
                    return "annotation", annotation.id, index
        note = self._find_note_at(pos)
        if note is not None:
            return "annotation", note.id, None
        return None

    def _show_annotation_menu(self, global_pos, hit: Hit) -> None:
        """注釈のコンテキストメニュー（コメント追加、図形の消去、削除）を表示する。"""
        kind, annotation_id, index = hit
        handler = self.main_window.annotation_handler
        menu = QMenu(self)
        if kind == "pending":
            erase_action = menu.addAction("消去")
            selected = menu.exec(global_pos)
            if selected is erase_action:
                handler.erase_pending(self._page(), index)
            return

        annotation = handler.find(annotation_id)
        if annotation is None:
            return
        comment_action = menu.addAction("コメントを追加")
        workspace_action = menu.addAction("ワークスペースにコメント")
        erase_action = menu.addAction("この図形を消去") if annotation.is_group and index is not None else None
        menu.addSeparator()
        delete_action = menu.addAction("削除")
        selected = menu.exec(global_pos)
        if selected is None:
            return
        if selected is comment_action:
            text, ok = QInputDialog.getMultiLineText(self, "コメント", "コメントを入力してください:")
            if ok and text.strip():
                handler.add_comment(annotation_id, text.strip())
                handler.select_annotation(annotation_id)
        elif selected is workspace_action:
            self._comment_to_workspace(annotation)
        elif erase_action is not None and selected is erase_action:
            handler.erase_highlight(annotation_id, index)
        elif selected is delete_action:
            handler.erase_highlight(annotation_id)

    def _comment_to_workspace(self, annotation: Annotation) -> None:
        """注釈の位置に紐付くコメントをワークスペースに置く。"""
        rect = shape_bounds(annotation.shapes[0]) if annotation.shapes else None
        if rect is None and annotation.anchor is not None:
            rect = RectShape(annotation.anchor.x, annotation.anchor.y, 0.0, 0.0)
        text, ok = QInputDialog.getMultiLineText(self, "ワークスペースにコメント", "コメントを入力してください:")
        if not ok:
            return
        self.main_window.workspace_handler.create_workspace_comment(
            annotation.page_number, rect, text,
            quote_text=annotation.text or "", color=annotation.color,
        )

    def _show_bookmark_menu(self, global_pos, page: int) -> None:
        bookmark_service = self.main_window.bookmark_service
        menu = QMenu(self)
        note_action = menu.addAction("メモを編集")
        remove_action = menu.addAction("しおりを外す")
        selected = menu.exec(global_pos)
        if selected is note_action:
            bookmark = bookmark_service.get(page)
            current = bookmark.note if bookmark is not None else ""
            text, ok = QInputDialog.getText(self, "しおり", "メモ:", text=current or "")
            if ok:
                bookmark_service.update_note(page, text)
        elif selected is remove_action:
            bookmark_service.remove(page)
        self.update()

    # --- 一時的な強調表示 ---
    def flash(self, rect: Optional[RectShape], color: str, duration_ms: int) -> None:
        """矩形を一定時間だけ強調表示する。"""
        if rect is None:
            return
        self._flash_rect = rect
        self._flash_color = QColor(color)
        self._flash_timer.start(duration_ms)
        self.update()

    def _clear_flash(self) -> None:
        self._flash_rect = None
        self.update()

    # --- 描画 ---
    def paintEvent(self, event: QPaintEvent) -> None:
        """
        再描画イベント。pixmap（PDFページ）の上に、注釈・ペンディング・しおり・描画中の図形を描画する。
        """
        super().paintEvent(event)
        if not self._has_page():
            return
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        page = self._page()
        handler = self.main_window.annotation_handler
        selected = handler.selected_annotation()

        for annotation in self.main_window.server_annotations.get(page, []):
            for shape in annotation.shapes:
                self._paint_shape(painter, shape, shape.color or annotation.color, False)

        for annotation in handler.visible_annotations(page):
            is_selected = selected is not None and selected.id == annotation.id
            if annotation.type == "comment":
                self._paint_note(painter, annotation, is_selected)
                continue
            for shape in annotation.shapes:
                self._paint_shape(painter, shape, shape.color or annotation.color, is_selected)

        selection = handler.selection
        for index, shape in enumerate(handler.pending_for(page)):
            active = (selection is not None and selection.kind == "pending"
                      and selection.page_number == page and selection.index == index)
            self._paint_shape(painter, shape, shape.color or "#FFEB3B", active, dashed=True)

        self._paint_bookmark(painter, page)

        preview = self.main_window.drawing_handler.preview_shape()
        if preview is not None:
            self._paint_shape(painter, preview, preview.color or "#2196F3", False, dashed=True)

        if self._markup_start is not None and self._markup_last is not None:
            painter.setPen(QPen(QColor("#2196F3"), 1, Qt.PenStyle.DashLine))
            painter.setBrush(Qt.BrushStyle.NoBrush)
            painter.drawRect(QRectF(self._markup_start, self._markup_last).normalized())

        if self._flash_rect is not None:
            width, height = self.page_size()
            rect = denormalize(self._flash_rect, width, height)
            fill = QColor(self._flash_color)
            fill.setAlphaF(0.55)
            painter.setPen(QPen(self._flash_color, 2))
            painter.setBrush(QBrush(fill))
            painter.drawRect(QRectF(rect.x, rect.y, rect.width, rect.height))
        painter.end()

    def _paint_shape(self, painter: QPainter, shape: Shape, color: str, selected: bool,
                     dashed: bool = False) -> None:
        path = self._shape_path(shape)
        base = QColor(color)
        if isinstance(shape, RectShape):
            fill = QColor(base)
            fill.setAlphaF(0.35)
            painter.setBrush(QBrush(fill))
            if selected:
                painter.setPen(QPen(QColor(SELECTION_COLOR), 2))
            elif dashed:
                painter.setPen(QPen(base, 1, Qt.PenStyle.DashLine))
            else:
                painter.setPen(Qt.PenStyle.NoPen)
            painter.drawPath(path)
            return

        painter.setBrush(Qt.BrushStyle.NoBrush)
        if isinstance(shape, FreehandShape):
            base.setAlphaF(max(0.05, min(1.0, shape.opacity)))
            line_width = max(1.0, shape.stroke_width * STROKE_SCALE)
        else:
            line_width = 2.0
        if selected:
            painter.setPen(QPen(QColor(SELECTION_COLOR), line_width + 6, Qt.PenStyle.SolidLine,
                                Qt.PenCapStyle.RoundCap, Qt.PenJoinStyle.RoundJoin))
            painter.drawPath(path)
        style = Qt.PenStyle.DashLine if dashed else Qt.PenStyle.SolidLine
        painter.setPen(QPen(base, line_width, style, Qt.PenCapStyle.RoundCap, Qt.PenJoinStyle.RoundJoin))
        painter.drawPath(path)

    def _paint_note(self, painter: QPainter, annotation: Annotation, selected: bool) -> None:
        if annotation.anchor is None:
            return
        rect = self._marker_rect(annotation.anchor, NOTE_SIZE)
        painter.setBrush(QBrush(QColor(annotation.color)))
        painter.setPen(QPen(QColor(SELECTION_COLOR) if selected else QColor("#555555"), 2 if selected else 1))
        painter.drawRoundedRect(rect, 4, 4)
        painter.setPen(QPen(QColor("#333333")))
        painter.drawText(rect, Qt.AlignmentFlag.AlignCenter, "✎")

    def _paint_bookmark(self, painter: QPainter, page: int) -> None:
        bookmark = self.main_window.bookmark_service.get(page)
        if bookmark is None:
            return
        rect = self._marker_rect(bookmark.position, BOOKMARK_SIZE)
        flag = QPainterPath()
        flag.moveTo(rect.left(), rect.top())
        flag.lineTo(rect.right(), rect.top())
        flag.lineTo(rect.right(), rect.bottom())
        flag.lineTo(rect.center().x(), rect.bottom() - rect.height() / 3)
        flag.lineTo(rect.left(), rect.bottom())
        flag.closeSubpath()
        painter.setPen(QPen(QColor("#7f1d1d"), 1))
        painter.setBrush(QBrush(QColor(bookmark.color)))
        painter.drawPath(flag)
