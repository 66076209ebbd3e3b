import pytest

from models.geometry_models import Point, RectShape
from models.ocr_models import OcrResult
from models.workspace_models import PaneGeometry, PaneRect, parse_source_page
from services.storage_service import WORKSPACE_KEY
from ui.handlers.workspace_handler import WorkspaceHandler


def _handler(storage=None):
    return WorkspaceHandler(storage, rng=lambda: 0.5)


def _panes():
    return PaneGeometry(
        document=PaneRect(100, 50, 400, 600),
        workspace=PaneRect(600, 50, 300, 600),
        origin=PaneRect(0, 0, 1000, 700),
    )


def test_add_clipping_prepends_and_strips():
    handler = _handler()
    first = handler.add_clipping("  first  ", 1)
    second = handler.add_clipping("second", 2)
    assert first.content == "first"
    assert [c.id for c in handler.clippings] == [second.id, first.id]
    assert handler.add_clipping("   ", 1) is None


def test_add_ocr_clipping_records_confidence():
    handler = _handler()
    rect = RectShape(0.1, 0.1, 0.3, 0.2)
    clip = handler.add_ocr_clipping(4, rect, OcrResult("recognized", 87))
    assert clip.source == "OCR"
    assert clip.confidence == 87
    assert clip.source_rect is rect
    assert handler.add_ocr_clipping(4, rect, None) is None


def test_combine_requires_two_selected():
    handler = _handler()
    clip = handler.add_clipping("only", 1)
    handler.toggle_clipping_selection(clip.id)
    assert handler.combine_clippings() is None


def test_combine_follows_list_order_and_removes_sources():
    handler = _handler()
    a = handler.add_clipping("alpha", 3, RectShape(0.1, 0.1, 0.2, 0.1))
    b = handler.add_clipping("beta", 5, RectShape(0.5, 0.5, 0.2, 0.1))
    keep = handler.add_clipping("gamma", 1)
    handler.toggle_clipping_selection(a.id)
    handler.toggle_clipping_selection(b.id)

    combined = handler.combine_clippings()

    # 一覧の並びは新しい順なので beta が先
    assert combined.content == "Segment 1: beta\nSegment 2: alpha"
    assert [s.id for s in combined.segments] == [b.id, a.id]
    assert combined.source_page == 5
    assert combined.source_pages == [5, 3]
    assert [c.id for c in handler.clippings] == [combined.id, keep.id]
    assert handler.selected_clipping_ids == []


def test_combine_drops_items_of_original_clips():
    handler = _handler()
    a = handler.add_clipping("alpha", 1)
    b = handler.add_clipping("beta", 2)
    handler.place_item("clip", a.id, Point(0.5, 0.5))
    handler.toggle_clipping_selection(a.id)
    handler.toggle_clipping_selection(b.id)
    handler.combine_clippings()
    assert handler.items == []


def test_reorder_swaps_and_clamps():
    handler = _handler()
    a = handler.add_clipping("a", 1)
    b = handler.add_clipping("b", 1)
    assert not handler.reorder_clipping(b.id, -1)
    assert handler.reorder_clipping(b.id, 1)
    assert [c.id for c in handler.clippings] == [a.id, b.id]
    assert not handler.reorder_clipping("missing", 1)


def test_toggle_selection_returns_state():
    handler = _handler()
    clip = handler.add_clipping("a", 1)
    assert handler.toggle_clipping_selection(clip.id)
    assert not handler.toggle_clipping_selection(clip.id)


def test_workspace_comment_placement():
    handler = _handler()
    rect = RectShape(0.2, 0.2, 0.1, 0.1)
    first = handler.create_workspace_comment(2, rect, "first")
    handler.create_workspace_comment(2, rect, "second")

    items = {i.source_id: i for i in handler.items}
    assert items[first.id].x == pytest.approx(0.76)
    assert items[first.id].y == pytest.approx(0.18)
    second_item = handler.items[0]
    assert second_item.y == pytest.approx(0.32)


def test_workspace_comment_requires_rect_and_content():
    handler = _handler()
    assert handler.create_workspace_comment(1, None, "text") is None
    assert handler.create_workspace_comment(1, RectShape(0, 0, 0.1, 0.1), "  ") is None
    assert handler.items == []


def test_deleting_comment_prunes_its_item():
    handler = _handler()
    comment = handler.create_workspace_comment(1, RectShape(0.1, 0.1, 0.1, 0.1), "memo")
    assert handler.delete_workspace_comment(comment.id)
    assert handler.items == []
    assert not handler.delete_workspace_comment(comment.id)


def test_place_item_clamps_and_checks_source():
    handler = _handler()
    clip = handler.add_clipping("text", 1)
    item = handler.place_item("clip", clip.id, Point(1.5, -0.2))
    assert (item.x, item.y) == (0.98, 0.02)
    assert handler.place_item("clip", "missing", Point(0.5, 0.5)) is None
    with pytest.raises(ValueError):
        handler.place_item("note", clip.id, Point(0.5, 0.5))


def test_move_and_remove_item():
    handler = _handler()
    clip = handler.add_clipping("text", 1)
    item = handler.place_item("clip", clip.id, Point(0.5, 0.5))
    assert handler.move_item(item.id, Point(0.3, 2.0))
    assert (item.x, item.y) == (0.3, 0.98)
    assert handler.remove_item(item.id)
    assert not handler.move_item(item.id, Point(0.1, 0.1))


def test_removing_clip_prunes_items():
    handler = _handler()
    clip = handler.add_clipping("text", 1)
    handler.place_item("clip", clip.id, Point(0.3, 0.3))
    handler.place_item("clip", clip.id, Point(0.6, 0.6))
    comment = handler.create_workspace_comment(1, RectShape(0.1, 0.1, 0.2, 0.1), "note")
    assert len(handler.items) == 3

    handler.remove_clipping(clip.id)
    assert [i.type for i in handler.items] == ["comment"]
    assert handler.items[0].source_id == comment.id


def test_state_persists_and_orphans_are_pruned_on_load(storage):
    handler = _handler(storage)
    clip = handler.add_clipping("text", 2, RectShape(0.1, 0.1, 0.2, 0.2))
    handler.place_item("clip", clip.id, Point(0.4, 0.6))

    data = storage.load_json(WORKSPACE_KEY)
    data["items"].append({"id": "ws-orphan", "type": "clip", "source_id": "gone", "x": 0.5, "y": 0.5})
    storage.save_json(WORKSPACE_KEY, data)

    reloaded = _handler(storage)
    assert [c.id for c in reloaded.clippings] == [clip.id]
    assert [i.source_id for i in reloaded.items] == [clip.id]
    assert reloaded.clippings[0].source_rect.width == pytest.approx(0.2)


def test_corrupt_state_loads_empty(storage):
    storage.save_json(WORKSPACE_KEY, {"clippings": [{"content": "no id"}]})
    handler = _handler(storage)
    assert handler.clippings == []
    assert handler.items == []


def test_connector_for_clip_on_current_page():
    handler = _handler()
    clip = handler.add_clipping("text", 2, RectShape(0.25, 0.5, 0.5, 0.1))
    item = handler.place_item("clip", clip.id, Point(0.5, 0.5))

    connectors = handler.compute_connectors(item, 2, _panes())
    assert len(connectors) == 1
    start, end = connectors[0].start, connectors[0].end
    assert (start.x, start.y) == pytest.approx((300, 380))
    assert (end.x, end.y) == pytest.approx((750, 350))
    assert handler.compute_connectors(item, 3, _panes()) == []


def test_clip_without_rect_has_no_connector():
    handler = _handler()
    clip = handler.add_clipping("text", 1)
    item = handler.place_item("clip", clip.id, Point(0.5, 0.5))
    assert handler.compute_connectors(item, 1, _panes()) == []


def test_combined_clip_connects_each_segment_on_page():
    handler = _handler()
    a = handler.add_clipping("a", 1, RectShape(0.1, 0.1, 0.1, 0.1))
    b = handler.add_clipping("b", 1, RectShape(0.5, 0.5, 0.1, 0.1))
    c = handler.add_clipping("c", 2, RectShape(0.3, 0.3, 0.1, 0.1))
    for clip in (a, b, c):
        handler.toggle_clipping_selection(clip.id)
    combined = handler.combine_clippings()
    item = handler.place_item("clip", combined.id, Point(0.5, 0.5))

    assert len(handler.compute_connectors(item, 1, _panes())) == 2
    assert len(handler.compute_connectors(item, 2, _panes())) == 1
    assert handler.drop_target_page(combined.id) == 2


def test_refresh_connectors_without_panes_clears():
    handler = _handler()
    clip = handler.add_clipping("text", 1, RectShape(0.1, 0.1, 0.1, 0.1))
    handler.place_item("clip", clip.id, Point(0.5, 0.5))
    emitted = []
    handler.connectors_changed.connect(lambda: emitted.append(True))

    assert len(handler.refresh_connectors(1, _panes())) == 1
    assert handler.refresh_connectors(1, None) == []
    assert handler.connectors == []
    assert len(emitted) == 2


def test_focus_target_prefers_segment_on_current_page():
    handler = _handler()
    rect_a = RectShape(0.1, 0.1, 0.1, 0.1)
    rect_b = RectShape(0.5, 0.5, 0.1, 0.1)
    a = handler.add_clipping("a", 4, rect_a)
    b = handler.add_clipping("b", 6, rect_b)
    handler.toggle_clipping_selection(a.id)
    handler.toggle_clipping_selection(b.id)
    combined = handler.combine_clippings()
    item = handler.place_item("clip", combined.id, Point(0.5, 0.5))

    target = handler.focus_target(item.id, 4)
    assert (target.page_number, target.rect) == (4, rect_a)
    target = handler.focus_target(item.id, 1)
    assert (target.page_number, target.rect) == (6, rect_b)


def test_focus_target_for_comment():
    handler = _handler()
    rect = RectShape(0.2, 0.2, 0.1, 0.1)
    comment = handler.create_workspace_comment(9, rect, "memo")
    item = next(i for i in handler.items if i.source_id == comment.id)
    target = handler.focus_target(item.id, 1)
    assert (target.page_number, target.rect) == (9, rect)
    assert handler.focus_target("missing", 1) is None


def test_parse_source_page():
    assert parse_source_page("2, 3") == 2
    assert parse_source_page(5) == 5
    assert parse_source_page("abc") == 1
