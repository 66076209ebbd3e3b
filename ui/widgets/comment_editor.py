from __future__ import annotations
from typing import TYPE_CHECKING, Optional

from PyQt6.QtCore import Qt
from PyQt6.QtWidgets import (QWidget, QVBoxLayout, QHBoxLayout, QLabel, QListWidget,
                             QListWidgetItem, QTextEdit, QPushButton, QInputDialog)

from ui.components import OutsideClickFilter

if TYPE_CHECKING:
    from ui.handlers.annotation_handler import AnnotationHandler


class CommentEditor(QWidget):
    """
    選択中の注釈のコメントスレッド、またはペンディング中のハイライトのコメント入力を表示するパネル。

    選択がある間だけアプリケーション全体に OutsideClickFilter をインストールし、
    パネルの外側がクリックされたら選択を解除します。選択が切り替わると、
    入力途中のテキストは破棄されます。
    """
    def __init__(self, annotation_handler: AnnotationHandler, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.annotation_handler = annotation_handler
        self.outside_filter = OutsideClickFilter(self)
        self.outside_filter.clicked_outside.connect(self.annotation_handler.clear_selection)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(6, 6, 6, 6)
        self.title_label = QLabel()
        self.title_label.setWordWrap(True)
        layout.addWidget(self.title_label)

        self.comment_list = QListWidget()
        self.comment_list.itemDoubleClicked.connect(self._edit_item)
        layout.addWidget(self.comment_list)

        self.input_edit = QTextEdit()
        self.input_edit.setAcceptRichText(False)
        self.input_edit.setPlaceholderText("コメントを入力...")
        self.input_edit.setFixedHeight(80)
        layout.addWidget(self.input_edit)

        buttons = QHBoxLayout()
        self.save_button = QPushButton("保存")
        self.delete_button = QPushButton("コメント削除")
        self.discard_button = QPushButton("破棄")
        self.close_button = QPushButton("閉じる")
        for button in (self.save_button, self.delete_button, self.discard_button, self.close_button):
            buttons.addWidget(button)
        layout.addLayout(buttons)

        self.save_button.clicked.connect(self._save)
        self.delete_button.clicked.connect(self._delete_selected_comment)
        self.discard_button.clicked.connect(self._discard_pending)
        self.close_button.clicked.connect(self.annotation_handler.clear_selection)

        self.annotation_handler.selection_changed.connect(self.refresh)
        self.annotation_handler.annotations_changed.connect(self._on_annotations_changed)
        self.refresh()

    def refresh(self) -> None:
        """選択状態に合わせて表示を更新し、外側クリックの監視を切り替える。"""
        selection = self.annotation_handler.selection
        self.input_edit.clear()
        self.comment_list.clear()
        if selection is None:
            self.outside_filter.remove()
            self.hide()
            return

        if selection.kind == "pending":
            count = len(self.annotation_handler.pending_for(selection.page_number))
            self.title_label.setText(f"ページ {selection.page_number}: 未確定のハイライト {count} 件")
            self.input_edit.setPlaceholderText("最初のコメントを入力するとグループとして保存されます")
            self.delete_button.setVisible(False)
            self.discard_button.setVisible(True)
        else:
            self._fill_comments()
            self.input_edit.setPlaceholderText("コメントを追加...")
            self.delete_button.setVisible(True)
            self.discard_button.setVisible(False)
        self.show()
        self.outside_filter.install(self)

    def _fill_comments(self) -> None:
        annotation = self.annotation_handler.selected_annotation()
        self.comment_list.clear()
        if annotation is None:
            return
        if annotation.type == "comment":
            self.title_label.setText(f"付箋 (ページ {annotation.page_number})\n{annotation.content or ''}")
        else:
            label = annotation.text or annotation.type
            self.title_label.setText(f"{label} (ページ {annotation.page_number})")
        for comment in annotation.comments:
            item = QListWidgetItem(comment.text or "(空のコメント)")
            item.setToolTip(comment.created_at)
            self.comment_list.addItem(item)

    def _on_annotations_changed(self, page_number: int) -> None:
        selection = self.annotation_handler.selection
        if selection is not None and selection.kind == "annotation" and selection.page_number == page_number:
            self._fill_comments()

    def _save(self) -> None:
        selection = self.annotation_handler.selection
        text = self.input_edit.toPlainText().strip()
        if selection is None or not text:
            return
        if selection.kind == "pending":
            self.annotation_handler.commit_pending_with_comment(selection.page_number, text)
        else:
            self.annotation_handler.add_comment(selection.annotation_id, text)
            self.input_edit.clear()

    def _edit_item(self, item: QListWidgetItem) -> None:
        annotation = self.annotation_handler.selected_annotation()
        if annotation is None:
            return
        index = self.comment_list.row(item)
        current = annotation.comments[index].text if 0 <= index < len(annotation.comments) else ""
        text, ok = QInputDialog.getMultiLineText(self, "コメントの編集", "コメント:", current)
        if ok:
            self.annotation_handler.edit_comment(annotation.id, index, text)

    def _delete_selected_comment(self) -> None:
        annotation = self.annotation_handler.selected_annotation()
        row = self.comment_list.currentRow()
        if annotation is not None and row >= 0:
            self.annotation_handler.delete_comment(annotation.id, row)

    def _discard_pending(self) -> None:
        selection = self.annotation_handler.selection
        if selection is not None and selection.kind == "pending":
            self.annotation_handler.discard_pending(selection.page_number)

    def teardown(self) -> None:
        """ウィンドウを閉じる際に、アプリケーション全体のイベントフィルタを確実に外す。"""
        self.outside_filter.remove()

    def keyPressEvent(self, event) -> None:
        if event.key() == Qt.Key.Key_Escape:
            self.annotation_handler.clear_selection()
            return
        super().keyPressEvent(event)
