from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from models.geometry_models import Point

DRAG_KINDS = ("annotation", "bookmark", "workspace_item")

MoveCallback = Callable[[str, Point], object]


@dataclass
class DragSession:
    """ドラッグ中の対象。同時に存在できるのは1つだけ。

    Attributes:
        kind (str): 'annotation'（付箋）, 'bookmark', 'workspace_item' のいずれか。
        target_id (str): 移動対象のID。
        offset (Point): 掴んだ位置と対象の原点との差（正規化座標）。
        page_number (Optional[int]): 対象のページ。ワークスペースアイテムではNone。
        pointer_id (Optional[int]): ドラッグを開始した入力デバイスのID。
    """
    kind: str
    target_id: str
    offset: Point
    page_number: Optional[int] = None
    pointer_id: Optional[int] = None


class DragHandler:
    """
    付箋・しおり・ワークスペースアイテムのドラッグ移動を管理するハンドラクラス。

    種類ごとに移動先を適用するコールバックを登録し、1つのセッションだけを保持します。
    """
    def __init__(self) -> None:
        self.session: Optional[DragSession] = None
        self._callbacks: Dict[str, MoveCallback] = {}

    def register(self, kind: str, callback: MoveCallback) -> None:
        """ドラッグの種類に対して、位置を適用するコールバックを登録する。

        コールバックは (対象ID, 新しい位置) を受け取り、範囲への制限も担います。
        """
        if kind not in DRAG_KINDS:
            raise ValueError(f"未知のドラッグ種別です: {kind}")
        self._callbacks[kind] = callback

    @property
    def is_dragging(self) -> bool:
        return self.session is not None

    def begin(self, kind: str, target_id: str, pointer: Point, origin: Point,
              page_number: Optional[int] = None, pointer_id: Optional[int] = None) -> DragSession:
        """ドラッグを開始する。既存のセッションは上書きされる。

        Args:
            kind (str): ドラッグの種類。
            target_id (str): 対象ID。
            pointer (Point): 押した位置（正規化座標）。
            origin (Point): 対象の現在位置（正規化座標）。
            page_number (Optional[int]): 対象のページ。
            pointer_id (Optional[int]): 入力デバイスのID。

        Returns:
            DragSession: 新しいセッション。
        """
        if kind not in DRAG_KINDS:
            raise ValueError(f"未知のドラッグ種別です: {kind}")
        self.session = DragSession(
            kind=kind,
            target_id=target_id,
            offset=Point(pointer.x - origin.x, pointer.y - origin.y),
            page_number=page_number,
            pointer_id=pointer_id,
        )
        return self.session

    def move(self, pointer: Point, pointer_id: Optional[int] = None) -> bool:
        """ポインタの移動を対象に反映する。

        Returns:
            bool: 位置を適用した場合はTrue。
        """
        session = self.session
        if session is None:
            return False
        if pointer_id is not None and session.pointer_id is not None and pointer_id != session.pointer_id:
            return False
        callback = self._callbacks.get(session.kind)
        if callback is None:
            return False
        callback(session.target_id, Point(pointer.x - session.offset.x, pointer.y - session.offset.y))
        return True

    def end(self) -> Optional[DragSession]:
        """ドラッグを終了する（離した場合もキャンセルの場合も必ず呼ぶ）。"""
        session = self.session
        self.session = None
        return session
