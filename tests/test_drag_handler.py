import pytest

from models.geometry_models import Point
from services.bookmark_service import BookmarkService
from ui.handlers.annotation_handler import AnnotationHandler
from ui.handlers.drag_handler import DragHandler


def test_move_applies_offset_to_callback():
    drag = DragHandler()
    moves = []
    drag.register("workspace_item", lambda target, p: moves.append((target, p.x, p.y)))
    drag.begin("workspace_item", "ws-1", pointer=Point(0.55, 0.45), origin=Point(0.5, 0.5))

    assert drag.move(Point(0.65, 0.35))
    assert moves[0][0] == "ws-1"
    assert moves[0][1:] == pytest.approx((0.6, 0.4))


def test_move_without_session_or_callback():
    drag = DragHandler()
    assert not drag.move(Point(0.1, 0.1))
    drag.begin("bookmark", "bm-1", Point(0, 0), Point(0, 0))
    assert not drag.move(Point(0.1, 0.1))


def test_other_pointer_is_ignored():
    drag = DragHandler()
    moves = []
    drag.register("annotation", lambda target, p: moves.append(p))
    drag.begin("annotation", "ann-1", Point(0, 0), Point(0, 0), pointer_id=1)
    assert not drag.move(Point(0.2, 0.2), pointer_id=2)
    assert drag.move(Point(0.2, 0.2), pointer_id=1)
    assert len(moves) == 1


def test_end_clears_session():
    drag = DragHandler()
    drag.begin("annotation", "ann-1", Point(0, 0), Point(0, 0), page_number=3)
    session = drag.end()
    assert session.page_number == 3
    assert not drag.is_dragging
    assert drag.end() is None


def test_unknown_kind_is_rejected():
    drag = DragHandler()
    with pytest.raises(ValueError):
        drag.register("clip", lambda *_: None)
    with pytest.raises(ValueError):
        drag.begin("clip", "x", Point(0, 0), Point(0, 0))


def test_note_drag_is_clamped_by_annotation_handler():
    annotations = AnnotationHandler()
    note = annotations.add_note(1, Point(0.5, 0.5), "memo")
    drag = DragHandler()
    drag.register("annotation", annotations.move_note)
    drag.begin("annotation", note.id, Point(0.5, 0.5), note.anchor, page_number=1)
    drag.move(Point(1.5, 1.5))
    assert (note.anchor.x, note.anchor.y) == (0.92, 0.92)


def test_bookmark_drag_is_clamped_and_saved(storage):
    bookmarks = BookmarkService(storage)
    bookmarks.toggle(2)
    bookmark = bookmarks.get(2)
    drag = DragHandler()
    drag.register("bookmark", bookmarks.move)
    drag.begin("bookmark", bookmark.id, bookmark.position, bookmark.position, page_number=2)
    drag.move(Point(-1.0, 0.5))

    reloaded = BookmarkService(storage).get(2)
    assert (reloaded.position.x, reloaded.position.y) == pytest.approx((0.05, 0.5))
