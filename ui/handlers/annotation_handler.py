from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Set

from PyQt6.QtCore import QObject, pyqtSignal

from models.annotation_models import ANNOTATION_TYPES, Annotation, Comment
from models.geometry_models import Point, RectShape, Shape, shape_from_dict
from services.storage_service import annotations_key, pending_key
from utils.geometry import clamp, text_markup_lines
from utils.id_utils import new_id, now_iso

if TYPE_CHECKING:
    from services.storage_service import StorageService

logger = logging.getLogger(__name__)

DEFAULT_HIGHLIGHT_COLOR = "#FFEB3B"
NOTE_MARGIN = (0.05, 0.95)
NOTE_DRAG_MARGIN = (0.02, 0.92)


@dataclass
class Selection:
    """現在アクティブな注釈、またはペンディング中のハイライト。

    Attributes:
        kind (str): 'annotation' または 'pending'。
        page_number (int): 対象ページ。
        annotation_id (Optional[str]): kind == 'annotation' の場合の注釈ID。
        index (Optional[int]): kind == 'pending' の場合のペンディングリスト内の位置。
    """
    kind: str
    page_number: int
    annotation_id: Optional[str] = None
    index: Optional[int] = None


class AnnotationHandler(QObject):
    """
    ページごとの注釈とペンディング中のハイライトを管理するハンドラクラス。

    注釈の作成・コメント編集・削除、ペンディングからグループへの確定、
    選択状態と種類別の表示フィルタ、ページ単位のローカル保存を担います。

    Signals:
        annotations_changed (pyqtSignal): 注釈またはペンディングが変化したページ番号を通知します。
        selection_changed (pyqtSignal): 選択が変化した際に通知します。
    """
    annotations_changed = pyqtSignal(int)
    selection_changed = pyqtSignal()

    def __init__(self, storage_service: Optional[StorageService] = None,
                 parent: Optional[QObject] = None) -> None:
        """
        AnnotationHandlerのコンストラクタ。

        Args:
            storage_service (Optional[StorageService]): ページ単位の保存先。Noneの場合は保存しない。
            parent (Optional[QObject]): 親オブジェクト。
        """
        super().__init__(parent)
        self.storage_service = storage_service
        self.annotations: Dict[int, List[Annotation]] = {}
        self.pending: Dict[int, List[Shape]] = {}
        self.selection: Optional[Selection] = None
        self.hidden_types: Set[str] = set()
        self._loaded_pages: Set[int] = set()

    # --- 読み込み・保存 ---
    def load_page(self, page_number: int) -> None:
        """ページの注釈とペンディングを保存先から読み込む（未読み込みの場合のみ）。

        壊れたデータや存在しないデータは空のリストとして扱います。
        """
        if page_number in self._loaded_pages:
            return
        self._loaded_pages.add(page_number)
        if self.storage_service is None:
            return
        loaded: List[Annotation] = []
        for item in self.storage_service.load_list(annotations_key(page_number)):
            try:
                loaded.append(Annotation.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("ページ %d の不正な注釈を無視しました: %s", page_number, e)
        shapes: List[Shape] = []
        for item in self.storage_service.load_list(pending_key(page_number)):
            try:
                shapes.append(shape_from_dict(item))
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning("ページ %d の不正なペンディングを無視しました: %s", page_number, e)
        if loaded:
            self.annotations[page_number] = loaded + self.annotations.get(page_number, [])
        if shapes:
            self.pending[page_number] = shapes + self.pending.get(page_number, [])

    def load_pages(self, page_numbers: Iterable[int]) -> None:
        for page_number in page_numbers:
            self.load_page(page_number)

    def _save_page(self, page_number: int) -> None:
        if self.storage_service is None:
            return
        self.storage_service.save_json(
            annotations_key(page_number),
            [a.to_dict() for a in self.annotations.get(page_number, [])],
        )
        self.storage_service.save_json(
            pending_key(page_number),
            [s.to_dict() for s in self.pending.get(page_number, [])],
        )

    def _changed(self, page_number: int) -> None:
        self._save_page(page_number)
        self.annotations_changed.emit(page_number)

    def reset(self) -> None:
        """文書の切り替え時に、メモリ上の注釈と選択をすべて破棄する。"""
        pages = set(self.annotations) | set(self.pending)
        self.annotations.clear()
        self.pending.clear()
        self._loaded_pages.clear()
        self.clear_selection()
        for page_number in sorted(pages):
            self.annotations_changed.emit(page_number)

    # --- 参照 ---
    def annotations_for(self, page_number: int) -> List[Annotation]:
        self.load_page(page_number)
        return list(self.annotations.get(page_number, []))

    def pending_for(self, page_number: int) -> List[Shape]:
        self.load_page(page_number)
        return list(self.pending.get(page_number, []))

    def all_annotations(self) -> List[Annotation]:
        """全注釈をページ順、ページ内は追加順で返す。"""
        result: List[Annotation] = []
        for page_number in sorted(self.annotations):
            result.extend(self.annotations[page_number])
        return result

    def find(self, annotation_id: str) -> Optional[Annotation]:
        for items in self.annotations.values():
            for annotation in items:
                if annotation.id == annotation_id:
                    return annotation
        return None

    # --- ペンディング ---
    def add_pending(self, page_number: int, shape: Shape) -> int:
        """ペンディングリストに図形を追加し、コメント入力用にアクティブにする。

        Returns:
            int: 追加された図形のリスト内の位置。
        """
        self.load_page(page_number)
        items = self.pending.setdefault(page_number, [])
        items.append(shape)
        index = len(items) - 1
        self._changed(page_number)
        self.select_pending(page_number, index)
        return index

    def discard_pending(self, page_number: int) -> None:
        if not self.pending.pop(page_number, None):
            return
        if self.selection and self.selection.kind == "pending" and self.selection.page_number == page_number:
            self.clear_selection()
        self._changed(page_number)

    def erase_pending(self, page_number: int, index: int) -> bool:
        items = self.pending.get(page_number, [])
        if not 0 <= index < len(items):
            return False
        del items[index]
        if not items:
            del self.pending[page_number]
        if self.selection and self.selection.kind == "pending" and self.selection.page_number == page_number:
            self.clear_selection()
        self._changed(page_number)
        return True

    def commit_pending_with_comment(self, page_number: int, text: str,
                                    color: Optional[str] = None) -> Optional[Annotation]:
        """ペンディングリスト全体を、最初のコメント付きの1つのグループ注釈にまとめる。

        ペンディングが空、またはコメントが空白のみの場合は何もしません。

        Args:
            page_number (int): 対象ページ。
            text (str): 最初のコメント。
            color (Optional[str]): グループの色。省略時は先頭の図形の色。

        Returns:
            Optional[Annotation]: 作成されたグループ。何もしなかった場合はNone。
        """
        self.load_page(page_number)
        shapes = self.pending.get(page_number)
        if not shapes or not (text or "").strip():
            return None
        created_at = now_iso()
        group = Annotation(
            id=new_id("grp"),
            page_number=page_number,
            type="group",
            color=color or shapes[0].color or DEFAULT_HIGHLIGHT_COLOR,
            created_at=created_at,
            shapes=list(shapes),
            comments=[Comment(text=text.strip(), created_at=created_at)],
        )
        self.annotations.setdefault(page_number, []).append(group)
        del self.pending[page_number]
        self._changed(page_number)
        self.select_annotation(group.id)
        return group

    # --- 注釈の作成 ---
    def add_annotation(self, annotation: Annotation) -> Annotation:
        if annotation.type not in ANNOTATION_TYPES:
            raise ValueError(f"未知の注釈種別です: {annotation.type}")
        self.load_page(annotation.page_number)
        self.annotations.setdefault(annotation.page_number, []).append(annotation)
        self._changed(annotation.page_number)
        return annotation

    def add_note(self, page_number: int, anchor: Point, content: str,
                 linked_text: Optional[str] = None,
                 color: str = DEFAULT_HIGHLIGHT_COLOR) -> Optional[Annotation]:
        """ページ上に付箋を追加する。本文が空の場合は何もしない。"""
        if not (content or "").strip():
            return None
        note = Annotation(
            id=new_id("ann"),
            page_number=page_number,
            type="comment",
            color=color,
            created_at=now_iso(),
            content=content,
            linked_text=linked_text or None,
            anchor=Point(clamp(anchor.x, *NOTE_MARGIN), clamp(anchor.y, *NOTE_MARGIN)),
        )
        return self.add_annotation(note)

    def add_text_markup(self, page_number: int, markup_type: str, rects: List[RectShape],
                        text: str = "", color: str = DEFAULT_HIGHLIGHT_COLOR) -> Optional[Annotation]:
        """テキストの矩形からハイライト・下線・取り消し線を作る。

        Args:
            page_number (int): 対象ページ。
            markup_type (str): 'highlight', 'underline', 'strike' のいずれか。
            rects (List[RectShape]): 対象テキストの矩形（正規化座標）。
            text (str): 対象テキスト。
            color (str): 色。

        Returns:
            Optional[Annotation]: 作成された注釈。矩形が無い場合はNone。
        """
        if not rects:
            return None
        if markup_type == "highlight":
            shapes: List[Shape] = [RectShape(r.x, r.y, r.width, r.height) for r in rects]
        else:
            shapes = list(text_markup_lines(rects, markup_type))
        annotation = Annotation(
            id=new_id("ann"),
            page_number=page_number,
            type=markup_type,
            color=color,
            created_at=now_iso(),
            shapes=shapes,
            text=text or None,
        )
        return self.add_annotation(annotation)

    # --- コメント ---
    def edit_comment(self, annotation_id: str, index: int, text: str) -> bool:
        annotation = self.find(annotation_id)
        if annotation is None or not 0 <= index < len(annotation.comments):
            return False
        annotation.comments[index].text = text
        self._changed(annotation.page_number)
        return True

    def add_comment(self, annotation_id: str, text: str = "") -> bool:
        annotation = self.find(annotation_id)
        if annotation is None:
            return False
        annotation.comments.append(Comment(text=text, created_at=now_iso()))
        self._changed(annotation.page_number)
        return True

    def delete_comment(self, annotation_id: str, index: int) -> bool:
        annotation = self.find(annotation_id)
        if annotation is None or not 0 <= index < len(annotation.comments):
            return False
        del annotation.comments[index]
        self._changed(annotation.page_number)
        return True

    # --- 削除・消去 ---
    def delete_annotation(self, annotation_id: str) -> bool:
        for page_number, items in self.annotations.items():
            for i, annotation in enumerate(items):
                if annotation.id == annotation_id:
                    del items[i]
                    if not items:
                        del self.annotations[page_number]
                    if self.selection and self.selection.annotation_id == annotation_id:
                        self.clear_selection()
                    self._changed(page_number)
                    return True
        return False

    def erase_highlight(self, annotation_id: str, index: Optional[int] = None) -> bool:
        """注釈の図形を消去する。

        インデックスを指定した場合はグループからその図形だけを取り除き、
        グループが空になれば注釈ごと削除します。指定しない場合は注釈全体を削除します。

        Returns:
            bool: 何かを消去した場合はTrue。
        """
        annotation = self.find(annotation_id)
        if annotation is None:
            return False
        if index is None:
            return self.delete_annotation(annotation_id)
        if not 0 <= index < len(annotation.shapes):
            return False
        del annotation.shapes[index]
        if not annotation.shapes:
            return self.delete_annotation(annotation_id)
        self._changed(annotation.page_number)
        return True

    def move_note(self, annotation_id: str, point: Point) -> bool:
        """付箋の位置を更新する（ドラッグ中）。"""
        annotation = self.find(annotation_id)
        if annotation is None or annotation.type != "comment":
            return False
        annotation.anchor = Point(clamp(point.x, *NOTE_DRAG_MARGIN), clamp(point.y, *NOTE_DRAG_MARGIN))
        self._changed(annotation.page_number)
        return True

    # --- 選択 ---
    def select_annotation(self, annotation_id: str) -> bool:
        annotation = self.find(annotation_id)
        if annotation is None:
            return False
        self.selection = Selection(kind="annotation", page_number=annotation.page_number,
                                   annotation_id=annotation_id)
        self.selection_changed.emit()
        return True

    def select_pending(self, page_number: int, index: int) -> bool:
        if not 0 <= index < len(self.pending.get(page_number, [])):
            return False
        self.selection = Selection(kind="pending", page_number=page_number, index=index)
        self.selection_changed.emit()
        return True

    def clear_selection(self) -> None:
        if self.selection is None:
            return
        self.selection = None
        self.selection_changed.emit()

    def selected_annotation(self) -> Optional[Annotation]:
        if self.selection is None or self.selection.kind != "annotation":
            return None
        return self.find(self.selection.annotation_id)

    # --- 表示フィルタ ---
    def set_type_visible(self, annotation_type: str, visible: bool) -> None:
        if visible:
            self.hidden_types.discard(annotation_type)
        else:
            self.hidden_types.add(annotation_type)
        for page_number in sorted(self.annotations):
            self.annotations_changed.emit(page_number)

    def is_type_visible(self, annotation_type: str) -> bool:
        return annotation_type not in self.hidden_types

    def visible_annotations(self, page_number: int) -> List[Annotation]:
        """表示フィルタを適用したページの注釈。グループはハイライトの表示設定に従う。"""
        result = []
        for annotation in self.annotations_for(page_number):
            filter_type = "highlight" if annotation.type == "group" else annotation.type
            if filter_type not in self.hidden_types:
                result.append(annotation)
        return result
