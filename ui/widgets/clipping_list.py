from __future__ import annotations
from typing import TYPE_CHECKING, List, Optional

from PyQt6.QtCore import Qt, QMimeData
from PyQt6.QtWidgets import QAbstractItemView, QListWidget, QListWidgetItem, QWidget

if TYPE_CHECKING:
    from ui.handlers.workspace_handler import WorkspaceHandler

CLIPPING_MIME_TYPE = "application/x-clipping-id"
PREVIEW_CHARS = 120


class ClippingListWidget(QListWidget):
    """
    クリップの一覧。チェックボックスで結合対象を選択し、ワークスペースへドラッグできる。
    """
    def __init__(self, workspace_handler: WorkspaceHandler, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.workspace_handler = workspace_handler
        self.setDragEnabled(True)
        self.setDragDropMode(QAbstractItemView.DragDropMode.DragOnly)
        self.setWordWrap(True)
        self._refreshing = False

        self.itemChanged.connect(self._on_item_changed)
        self.workspace_handler.workspace_changed.connect(self.refresh, Qt.ConnectionType.QueuedConnection)
        self.refresh()

    def refresh(self) -> None:
        """ワークスペースの状態から一覧を作り直す。現在の行は可能な限り維持する。"""
        current = self.current_clipping_id()
        self._refreshing = True
        self.clear()
        selected = set(self.workspace_handler.selected_clipping_ids)
        for clipping in self.workspace_handler.clippings:
            pages = ", ".join(str(p) for p in clipping.source_pages)
            preview = clipping.content if len(clipping.content) <= PREVIEW_CHARS \
                else clipping.content[:PREVIEW_CHARS] + "…"
            label = f"[{clipping.source} p.{pages}] {preview}"
            if clipping.confidence is not None:
                label += f" ({clipping.confidence}%)"
            item = QListWidgetItem(label)
            item.setData(Qt.ItemDataRole.UserRole, clipping.id)
            item.setFlags(item.flags() | Qt.ItemFlag.ItemIsUserCheckable | Qt.ItemFlag.ItemIsDragEnabled)
            item.setCheckState(Qt.CheckState.Checked if clipping.id in selected else Qt.CheckState.Unchecked)
            self.addItem(item)
            if clipping.id == current:
                self.setCurrentItem(item)
        self._refreshing = False

    def current_clipping_id(self) -> Optional[str]:
        item = self.currentItem()
        return item.data(Qt.ItemDataRole.UserRole) if item is not None else None

    def _on_item_changed(self, item: QListWidgetItem) -> None:
        if self._refreshing:
            return
        clipping_id = item.data(Qt.ItemDataRole.UserRole)
        checked = item.checkState() == Qt.CheckState.Checked
        if checked != (clipping_id in self.workspace_handler.selected_clipping_ids):
            self.workspace_handler.toggle_clipping_selection(clipping_id)

    def mimeData(self, items: List[QListWidgetItem]) -> QMimeData:
        data = super().mimeData(items)
        if items:
            clipping_id = items[0].data(Qt.ItemDataRole.UserRole)
            data.setData(CLIPPING_MIME_TYPE, clipping_id.encode("utf-8"))
        return data
