# services/bookmark_service.py
import logging
from typing import Any, List, Optional

from models.bookmark_models import Bookmark
from models.geometry_models import Point
from services.base_service import BaseService
from services.storage_service import BOOKMARKS_KEY, StorageService
from utils.geometry import clamp
from utils.id_utils import new_id, now_iso

logger = logging.getLogger(__name__)

BOOKMARK_MARGIN = (0.05, 0.95)
DEFAULT_BOOKMARK_COLOR = "#EF4444"


class BookmarkService(BaseService[List[Bookmark]]):
    """しおりの管理と永続化を行うサービス。

    しおりは1ページにつき1つで、注釈とは独立に保存されます。
    """

    def __init__(self, storage_service: StorageService) -> None:
        super().__init__(storage_service=storage_service)
        self.bookmarks: List[Bookmark] = self.load_data() or []

    def load_data(self, identifier: Any = None) -> Optional[List[Bookmark]]:
        bookmarks: List[Bookmark] = []
        for item in self.storage_service.load_list(BOOKMARKS_KEY):
            try:
                bookmarks.append(Bookmark.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("不正なしおりデータを無視しました: %s (%s)", item, e)
        return sorted(bookmarks, key=lambda b: b.page_number)

    def save_data(self, data: List[Bookmark]) -> None:
        self.storage_service.save_json(BOOKMARKS_KEY, [b.to_dict() for b in data])

    def get(self, page_number: int) -> Optional[Bookmark]:
        for bookmark in self.bookmarks:
            if bookmark.page_number == page_number:
                return bookmark
        return None

    def is_bookmarked(self, page_number: int) -> bool:
        return self.get(page_number) is not None

    def add(
        self,
        page_number: int,
        note: Optional[str] = None,
        position: Optional[Point] = None,
        color: str = DEFAULT_BOOKMARK_COLOR,
    ) -> Bookmark:
        """ページにしおりを付ける。既にある場合はメモと位置を更新する。

        Args:
            page_number (int): 対象ページ。
            note (Optional[str]): メモ。空白のみの場合はNoneとして扱います。
            position (Optional[Point]): フラグの位置（正規化座標）。
            color (str): フラグの色。

        Returns:
            Bookmark: 追加または更新されたしおり。
        """
        note = (note or "").strip() or None
        if position is None:
            position = Point(0.9, 0.1)
        position = Point(
            clamp(position.x, *BOOKMARK_MARGIN),
            clamp(position.y, *BOOKMARK_MARGIN),
        )
        existing = self.get(page_number)
        if existing:
            existing.note = note
            existing.position = position
            bookmark = existing
        else:
            bookmark = Bookmark(
                id=new_id("bm"),
                page_number=page_number,
                note=note,
                position=position,
                color=color,
                created_at=now_iso(),
            )
            self.bookmarks.append(bookmark)
            self.bookmarks.sort(key=lambda b: b.page_number)
        self.save_data(self.bookmarks)
        return bookmark

    def remove(self, page_number: int) -> bool:
        before = len(self.bookmarks)
        self.bookmarks = [b for b in self.bookmarks if b.page_number != page_number]
        if len(self.bookmarks) == before:
            return False
        self.save_data(self.bookmarks)
        return True

    def toggle(self, page_number: int, note: Optional[str] = None) -> bool:
        """しおりの有無を切り替える。切り替え後に付いていればTrue。"""
        if self.remove(page_number):
            return False
        self.add(page_number, note=note)
        return True

    def move(self, bookmark_id: str, position: Point) -> Optional[Bookmark]:
        """フラグをドラッグで移動する。位置はページ内の余白に収める。"""
        for bookmark in self.bookmarks:
            if bookmark.id == bookmark_id:
                bookmark.position = Point(
                    clamp(position.x, *BOOKMARK_MARGIN),
                    clamp(position.y, *BOOKMARK_MARGIN),
                )
                self.save_data(self.bookmarks)
                return bookmark
        return None

    def update_note(self, page_number: int, note: Optional[str]) -> Optional[Bookmark]:
        bookmark = self.get(page_number)
        if bookmark is None:
            return None
        bookmark.note = (note or "").strip() or None
        self.save_data(self.bookmarks)
        return bookmark
