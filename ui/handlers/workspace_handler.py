from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional, Union

from PyQt6.QtCore import QObject, pyqtSignal

from models.geometry_models import Point, RectShape
from models.ocr_models import OcrResult
from models.workspace_models import (ClipSegment, Clipping, Connector, PaneGeometry,
                                     WORKSPACE_ITEM_TYPES, WorkspaceComment, WorkspaceItem)
from services.storage_service import WORKSPACE_KEY
from utils.app_config import AppConfig
from utils.geometry import clamp, rect_center
from utils.id_utils import new_id, now_iso

if TYPE_CHECKING:
    from services.storage_service import StorageService

logger = logging.getLogger(__name__)

WorkspaceSource = Union[Clipping, WorkspaceComment]


@dataclass
class FocusTarget:
    """ワークスペースアイテムをクリックした際のジャンプ先。"""
    page_number: int
    rect: Optional[RectShape]


class WorkspaceHandler(QObject):
    """
    クリップ・ワークスペースコメント・ワークスペースアイテムを管理するハンドラクラス。

    アイテムは参照先（クリップまたはコメント）が存在する間だけ保持され、
    参照先の変更のたびに孤立したアイテムを取り除きます。
    文書上の抽出元とアイテムを結ぶコネクタの座標計算もここで行います。

    Signals:
        workspace_changed (pyqtSignal): クリップ・コメント・アイテムが変化した際に通知します。
        connectors_changed (pyqtSignal): コネクタが再計算された際に通知します。
    """
    workspace_changed = pyqtSignal()
    connectors_changed = pyqtSignal()

    def __init__(self, storage_service: Optional[StorageService] = None,
                 config: Optional[AppConfig] = None,
                 rng: Optional[Callable[[], float]] = None,
                 parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.storage_service = storage_service
        self.config = config or AppConfig()
        self._random = rng or random.random

        self.clippings: List[Clipping] = []
        self.comments: List[WorkspaceComment] = []
        self.items: List[WorkspaceItem] = []
        self.selected_clipping_ids: List[str] = []
        self.connectors: List[Connector] = []
        self.load()

    # --- 読み込み・保存 ---
    def load(self) -> None:
        """保存されたワークスペースの状態を復元する。壊れたデータは空として扱う。"""
        if self.storage_service is None:
            return
        data = self.storage_service.load_json(WORKSPACE_KEY)
        if not isinstance(data, dict):
            return
        try:
            self.clippings = [Clipping.from_dict(c) for c in data.get("clippings") or []]
            self.comments = [WorkspaceComment.from_dict(c) for c in data.get("comments") or []]
            self.items = [WorkspaceItem.from_dict(i) for i in data.get("items") or []]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("ワークスペースの状態を読み込めませんでした: %s", e)
            self.clippings, self.comments, self.items = [], [], []
            return
        self.prune_orphans()

    def save(self) -> None:
        if self.storage_service is None:
            return
        self.storage_service.save_json(WORKSPACE_KEY, {
            "clippings": [c.to_dict() for c in self.clippings],
            "comments": [c.to_dict() for c in self.comments],
            "items": [i.to_dict() for i in self.items],
        })

    def _changed(self) -> None:
        self.prune_orphans()
        self.save()
        self.workspace_changed.emit()

    # --- 参照 ---
    def find_clipping(self, clipping_id: str) -> Optional[Clipping]:
        return next((c for c in self.clippings if c.id == clipping_id), None)

    def find_comment(self, comment_id: str) -> Optional[WorkspaceComment]:
        return next((c for c in self.comments if c.id == comment_id), None)

    def find_item(self, item_id: str) -> Optional[WorkspaceItem]:
        return next((i for i in self.items if i.id == item_id), None)

    def resolve(self, item: WorkspaceItem) -> Optional[WorkspaceSource]:
        """アイテムの参照先を返す。存在しなければNone。"""
        if item.type == "clip":
            return self.find_clipping(item.source_id)
        return self.find_comment(item.source_id)

    # --- クリップ ---
    def add_clipping(self, content: str, source_page: int,
                     source_rect: Optional[RectShape] = None, source: str = "PDF",
                     confidence: Optional[int] = None) -> Optional[Clipping]:
        """抽出したテキストをクリップとして先頭に追加する。空のテキストは無視する。"""
        content = (content or "").strip()
        if not content:
            return None
        clipping = Clipping(
            id=new_id("clip"),
            content=content,
            created_at=now_iso(),
            source_page=source_page,
            source_rect=source_rect,
            source=source,
            confidence=confidence,
        )
        self.clippings.insert(0, clipping)
        self.selected_clipping_ids = []
        self._changed()
        return clipping

    def add_ocr_clipping(self, page_number: int, rect: RectShape,
                         result: Optional[OcrResult]) -> Optional[Clipping]:
        """範囲OCRの結果からクリップを作る。結果が無い場合は何もしない。"""
        if result is None:
            return None
        return self.add_clipping(result.text, page_number, rect, source="OCR",
                                 confidence=result.confidence)

    def remove_clipping(self, clipping_id: str) -> bool:
        before = len(self.clippings)
        self.clippings = [c for c in self.clippings if c.id != clipping_id]
        if len(self.clippings) == before:
            return False
        self.selected_clipping_ids = [i for i in self.selected_clipping_ids if i != clipping_id]
        self._changed()
        return True

    def toggle_clipping_selection(self, clipping_id: str) -> bool:
        """クリップの選択を切り替える。切り替え後に選択されていればTrue。"""
        if clipping_id in self.selected_clipping_ids:
            self.selected_clipping_ids.remove(clipping_id)
            selected = False
        else:
            self.selected_clipping_ids.append(clipping_id)
            selected = True
        self.workspace_changed.emit()
        return selected

    def reorder_clipping(self, clipping_id: str, direction: int) -> bool:
        """クリップを1つ上（-1）または下（+1）の位置と入れ替える。"""
        index = next((i for i, c in enumerate(self.clippings) if c.id == clipping_id), -1)
        if index < 0:
            return False
        swap = int(clamp(index + direction, 0, len(self.clippings) - 1))
        if swap == index:
            return False
        self.clippings[index], self.clippings[swap] = self.clippings[swap], self.clippings[index]
        self._changed()
        return True

    def combine_clippings(self) -> Optional[Clipping]:
        """選択中の2つ以上のクリップを、区間付きの1つのクリップにまとめる。

        元のクリップは一覧から取り除かれ、そのIDは区間に残ります。
        元のクリップを参照していたワークスペースアイテムも削除されます。

        Returns:
            Optional[Clipping]: 結合されたクリップ。選択が2つ未満の場合はNone。
        """
        selected_ids = set(self.selected_clipping_ids)
        selected = [c for c in self.clippings if c.id in selected_ids]
        if len(selected) < 2:
            return None
        segments = [
            ClipSegment(
                id=clip.id,
                label=f"Segment {n}",
                content=clip.content,
                source_page=clip.source_page,
                source_rect=clip.source_rect,
            )
            for n, clip in enumerate(selected, start=1)
        ]
        combined = Clipping(
            id=new_id("clip"),
            content="\n".join(f"{seg.label}: {seg.content}" for seg in segments),
            created_at=now_iso(),
            source_page=segments[0].source_page,
            source_rect=segments[0].source_rect,
            source=selected[0].source,
            segments=segments,
        )
        self.clippings = [combined] + [c for c in self.clippings if c.id not in selected_ids]
        self.selected_clipping_ids = []
        self._changed()
        return combined

    # --- ワークスペースコメント ---
    def create_workspace_comment(self, page_number: int, source_rect: Optional[RectShape],
                                 content: str, quote_text: str = "", source_type: str = "text",
                                 color: str = "#FFEB3B") -> Optional[WorkspaceComment]:
        """文書上の位置に紐付くコメントを作り、ワークスペースの右側に配置する。

        抽出元の矩形が無い場合や本文が空の場合は何もしません。
        """
        content = (content or "").strip()
        if source_rect is None or not content:
            return None
        created_at = now_iso()
        comment = WorkspaceComment(
            id=new_id("comment"),
            content=content,
            quote_text=quote_text,
            page_number=page_number,
            source_rect=source_rect,
            source_type=source_type,
            color=color,
            created_at=created_at,
        )
        self.comments.insert(0, comment)
        comment_count = sum(1 for i in self.items if i.type == "comment")
        base_y = 0.18 + ((comment_count * 0.14) % 0.6)
        self.items.insert(0, WorkspaceItem(
            id=new_id("ws"),
            type="comment",
            source_id=comment.id,
            x=clamp(0.72 + self._random() * 0.08, 0.05, 0.95),
            y=clamp(base_y, 0.05, 0.92),
            created_at=created_at,
        ))
        self._changed()
        return comment

    def delete_workspace_comment(self, comment_id: str) -> bool:
        before = len(self.comments)
        self.comments = [c for c in self.comments if c.id != comment_id]
        if len(self.comments) == before:
            return False
        self._changed()
        return True

    # --- アイテム ---
    def place_item(self, item_type: str, source_id: str, position: Point) -> Optional[WorkspaceItem]:
        """参照先をワークスペースに配置する。参照先が存在しない場合は何もしない。"""
        if item_type not in WORKSPACE_ITEM_TYPES:
            raise ValueError(f"未知のワークスペースアイテム種別です: {item_type}")
        lo, hi = self.config.workspace_margin
        item = WorkspaceItem(
            id=new_id("ws"),
            type=item_type,
            source_id=source_id,
            x=clamp(position.x, lo, hi),
            y=clamp(position.y, lo, hi),
            created_at=now_iso(),
        )
        if self.resolve(item) is None:
            return None
        self.items.insert(0, item)
        self.save()
        self.workspace_changed.emit()
        return item

    def move_item(self, item_id: str, position: Point) -> bool:
        item = self.find_item(item_id)
        if item is None:
            return False
        lo, hi = self.config.workspace_margin
        item.x = clamp(position.x, lo, hi)
        item.y = clamp(position.y, lo, hi)
        self.save()
        self.workspace_changed.emit()
        return True

    def remove_item(self, item_id: str) -> bool:
        before = len(self.items)
        self.items = [i for i in self.items if i.id != item_id]
        if len(self.items) == before:
            return False
        self.save()
        self.workspace_changed.emit()
        return True

    def prune_orphans(self) -> int:
        """参照先が存在しないアイテムを取り除く。

        Returns:
            int: 取り除いたアイテムの数。
        """
        clip_ids = {c.id for c in self.clippings}
        comment_ids = {c.id for c in self.comments}
        kept = [
            i for i in self.items
            if (i.source_id in clip_ids if i.type == "clip" else i.source_id in comment_ids)
        ]
        removed = len(self.items) - len(kept)
        if removed:
            logger.debug("参照先の無いワークスペースアイテムを %d 件削除しました", removed)
        self.items = kept
        return removed

    # --- コネクタ ---
    def compute_connectors(self, item: WorkspaceItem, current_page: int,
                           panes: PaneGeometry) -> List[Connector]:
        """アイテムと抽出元を結ぶコネクタを計算する。

        結合クリップは表示中のページにある区間ごとに1本、それ以外は0本または1本です。
        座標は `panes.origin` の左上を原点とする共通の座標系で表します。

        Args:
            item (WorkspaceItem): 対象アイテム。
            current_page (int): 表示中のページ番号。
            panes (PaneGeometry): 各ペインの現在の矩形。

        Returns:
            List[Connector]: コネクタのリスト。
        """
        source = self.resolve(item)
        if source is None:
            return []
        doc, ws, origin = panes.document, panes.workspace, panes.origin
        end = Point(
            ws.left + item.x * ws.width - origin.left,
            ws.top + item.y * ws.height - origin.top,
        )

        def build(rect: Optional[RectShape]) -> Optional[Connector]:
            if rect is None:
                return None
            center = rect_center(rect)
            start = Point(
                doc.left + center.x * doc.width - origin.left,
                doc.top + center.y * doc.height - origin.top,
            )
            return Connector(item_id=item.id, start=start, end=end)

        rects: List[Optional[RectShape]]
        if isinstance(source, WorkspaceComment):
            rects = [source.source_rect] if source.page_number == current_page else []
        elif source.segments:
            rects = [seg.source_rect for seg in source.segments if seg.source_page == current_page]
        else:
            rects = [source.source_rect] if source.source_page == current_page else []
        return [c for c in (build(r) for r in rects) if c is not None]

    def refresh_connectors(self, current_page: int, panes: Optional[PaneGeometry]) -> List[Connector]:
        """すべてのアイテムのコネクタを再計算する。ペインが無い場合は空にする。"""
        connectors: List[Connector] = []
        if panes is not None:
            for item in self.items:
                connectors.extend(self.compute_connectors(item, current_page, panes))
        self.connectors = connectors
        self.connectors_changed.emit()
        return connectors

    def focus_target(self, item_id: str, current_page: int) -> Optional[FocusTarget]:
        """アイテムをクリックした際に表示するページと、一時的に強調する矩形を返す。"""
        item = self.find_item(item_id)
        if item is None:
            return None
        source = self.resolve(item)
        if source is None:
            return None
        if isinstance(source, WorkspaceComment):
            return FocusTarget(page_number=source.page_number, rect=source.source_rect)
        if source.segments:
            segment = next((s for s in source.segments if s.source_page == current_page),
                           source.segments[0])
            return FocusTarget(page_number=segment.source_page,
                               rect=segment.source_rect or source.source_rect)
        return FocusTarget(page_number=source.source_page, rect=source.source_rect)

    def drop_target_page(self, clipping_id: str) -> Optional[int]:
        """クリップをワークスペースに置いた際に表示するページ（先頭区間のページ）。"""
        clip = self.find_clipping(clipping_id)
        if clip is None:
            return None
        if clip.segments:
            return clip.segments[0].source_page
        return clip.source_page
