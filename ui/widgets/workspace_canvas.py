from __future__ import annotations
from typing import TYPE_CHECKING, Optional

from PyQt6.QtCore import Qt, QPointF, QRectF, pyqtSignal
from PyQt6.QtGui import (QPainter, QPen, QColor, QBrush, QMouseEvent, QPaintEvent,
                         QDragEnterEvent, QDropEvent)
from PyQt6.QtWidgets import QWidget, QMenu

from models.geometry_models import Point
from models.workspace_models import WorkspaceComment, WorkspaceItem
from ui.widgets.clipping_list import CLIPPING_MIME_TYPE

if TYPE_CHECKING:
    from ui.handlers.drag_handler import DragHandler
    from ui.handlers.workspace_handler import WorkspaceHandler

CARD_WIDTH = 200
CARD_HEIGHT = 72
CLICK_TOLERANCE = 4
PREVIEW_CHARS = 90


class WorkspaceCanvas(QWidget):
    """
    クリップとワークスペースコメントを自由に配置するキャンバス。

    アイテムの位置はキャンバスの大きさに対する比率で保持されるため、
    リサイズしても相対的な配置は変わりません。アイテムのカードは位置を中心に描画します。

    Signals:
        item_clicked (pyqtSignal): ドラッグせずにクリックされたアイテムのIDを送信します。
        clipping_dropped (pyqtSignal): クリップ一覧からドロップされた (クリップID, 正規化位置) を送信します。
    """
    item_clicked = pyqtSignal(str)
    clipping_dropped = pyqtSignal(str, object)

    def __init__(self, workspace_handler: WorkspaceHandler, drag_handler: DragHandler,
                 parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.workspace_handler = workspace_handler
        self.drag_handler = drag_handler
        self.setAcceptDrops(True)
        self.setMinimumWidth(260)

        self._press_pos: Optional[QPointF] = None
        self._pressed_item: Optional[str] = None

        self.workspace_handler.workspace_changed.connect(self.update)

    # --- 座標 ---
    def _normalized(self, pos: QPointF) -> Point:
        width = max(self.width(), 1)
        height = max(self.height(), 1)
        return Point(pos.x() / width, pos.y() / height)

    def card_rect(self, item: WorkspaceItem) -> QRectF:
        cx = item.x * self.width()
        cy = item.y * self.height()
        return QRectF(cx - CARD_WIDTH / 2, cy - CARD_HEIGHT / 2, CARD_WIDTH, CARD_HEIGHT)

    def item_at(self, pos: QPointF) -> Optional[WorkspaceItem]:
        # 新しいアイテムほど手前に描画されるため、先頭から探す
        for item in self.workspace_handler.items:
            if self.card_rect(item).contains(pos):
                return item
        return None

    # --- マウスイベント ---
    def mousePressEvent(self, event: QMouseEvent) -> None:
        item = self.item_at(event.position())
        if item is None:
            return super().mousePressEvent(event)
        if event.button() == Qt.MouseButton.RightButton:
            self._show_item_menu(event.globalPosition().toPoint(), item)
            event.accept()
            return
        if event.button() != Qt.MouseButton.LeftButton:
            return super().mousePressEvent(event)
        self._press_pos = event.position()
        self._pressed_item = item.id
        self.drag_handler.begin("workspace_item", item.id, self._normalized(event.position()),
                                Point(item.x, item.y))
        self.grabMouse()
        event.accept()

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        if self.drag_handler.is_dragging:
            self.drag_handler.move(self._normalized(event.position()))
            return
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        if self._pressed_item is None:
            return super().mouseReleaseEvent(event)
        self.drag_handler.end()
        self.releaseMouse()
        item_id = self._pressed_item
        moved = self._press_pos is not None and (event.position() - self._press_pos).manhattanLength() > CLICK_TOLERANCE
        self._pressed_item = None
        self._press_pos = None
        if not moved:
            self.item_clicked.emit(item_id)
        event.accept()

    def _show_item_menu(self, global_pos, item: WorkspaceItem) -> None:
        menu = QMenu(self)
        remove_action = menu.addAction("ワークスペースから外す")
        delete_action = menu.addAction("コメントを削除") if item.type == "comment" else None
        selected = menu.exec(global_pos)
        if selected is None:
            return
        if selected is remove_action:
            self.workspace_handler.remove_item(item.id)
        elif delete_action is not None and selected is delete_action:
            self.workspace_handler.delete_workspace_comment(item.source_id)

    # --- ドラッグ&ドロップ ---
    def dragEnterEvent(self, event: QDragEnterEvent) -> None:
        if event.mimeData().hasFormat(CLIPPING_MIME_TYPE):
            event.acceptProposedAction()
        else:
            event.ignore()

    def dragMoveEvent(self, event) -> None:
        if event.mimeData().hasFormat(CLIPPING_MIME_TYPE):
            event.acceptProposedAction()

    def dropEvent(self, event: QDropEvent) -> None:
        data = event.mimeData()
        if not data.hasFormat(CLIPPING_MIME_TYPE):
            event.ignore()
            return
        clipping_id = bytes(data.data(CLIPPING_MIME_TYPE)).decode("utf-8")
        self.clipping_dropped.emit(clipping_id, self._normalized(event.position()))
        event.acceptProposedAction()

    # --- 描画 ---
    def paintEvent(self, event: QPaintEvent) -> None:
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.fillRect(self.rect(), QColor("#f8fafc"))
        if not self.workspace_handler.items:
            painter.setPen(QPen(QColor("#94a3b8")))
            painter.drawText(QRectF(self.rect()), Qt.AlignmentFlag.AlignCenter,
                             "クリップをここにドラッグしてください")
        # 古いアイテムから描画し、新しいアイテムを手前に重ねる
        for item in reversed(self.workspace_handler.items):
            self._paint_card(painter, item)
        painter.end()

    def _paint_card(self, painter: QPainter, item: WorkspaceItem) -> None:
        source = self.workspace_handler.resolve(item)
        if source is None:
            return
        rect = self.card_rect(item)
        if isinstance(source, WorkspaceComment):
            border = QColor(source.color or "#FFEB3B")
            title = f"コメント (p.{source.page_number})"
            body = source.content
        else:
            border = QColor("#2563eb" if source.source == "OCR" else "#64748b")
            pages = ", ".join(str(p) for p in source.source_pages)
            title = f"{source.source} (p.{pages})"
            body = source.content
        painter.setPen(QPen(border, 2))
        painter.setBrush(QBrush(QColor("white")))
        painter.drawRoundedRect(rect, 6, 6)
        text_rect = rect.adjusted(8, 4, -8, -4)
        painter.setPen(QPen(QColor("#475569")))
        painter.drawText(text_rect, Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignTop, title)
        painter.setPen(QPen(QColor("#111827")))
        preview = body if len(body) <= PREVIEW_CHARS else body[:PREVIEW_CHARS] + "…"
        painter.drawText(text_rect.adjusted(0, 18, 0, 0),
                         Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignTop | Qt.TextFlag.TextWordWrap,
                         preview)
