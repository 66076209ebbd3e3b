from models.annotation_models import Annotation
from models.geometry_models import FreehandShape, LineShape, Point, RectShape
from services.storage_service import annotations_key, pending_key
from ui.handlers.annotation_handler import AnnotationHandler


def _highlight(page=1, color="#FFEB3B"):
    return Annotation(id=f"ann-{page}-{color}", page_number=page, type="highlight", color=color,
                      created_at="2024-01-01T00:00:00", shapes=[RectShape(0.1, 0.1, 0.2, 0.05)])


def test_add_annotation_persists_per_page(storage):
    handler = AnnotationHandler(storage)
    changed = []
    handler.annotations_changed.connect(changed.append)
    handler.add_annotation(_highlight(page=3))

    assert changed == [3]
    saved = storage.load_list(annotations_key(3))
    assert saved[0]["type"] == "highlight"

    reloaded = AnnotationHandler(storage)
    assert [a.id for a in reloaded.annotations_for(3)] == ["ann-3-#FFEB3B"]


def test_corrupt_page_data_is_treated_as_empty(storage):
    storage.save_json(annotations_key(2), [{"type": "unknown"}, {"id": "x"}])
    storage.save_json(pending_key(2), {"not": "a list"})
    handler = AnnotationHandler(storage)
    assert handler.annotations_for(2) == []
    assert handler.pending_for(2) == []


def test_commit_pending_creates_group_with_first_comment(storage):
    handler = AnnotationHandler(storage)
    handler.add_pending(1, RectShape(0.1, 0.1, 0.2, 0.05, color="#FF9800"))
    handler.add_pending(1, FreehandShape(points=[Point(0.1, 0.1), Point(0.2, 0.2)]))

    group = handler.commit_pending_with_comment(1, "  要確認  ")

    assert group.type == "group"
    assert group.color == "#FF9800"
    assert len(group.highlights) == 2
    assert [c.text for c in group.comments] == ["要確認"]
    assert handler.pending_for(1) == []
    assert storage.load_list(pending_key(1)) == []
    assert handler.selected_annotation() is group


def test_commit_pending_with_blank_comment_is_noop():
    handler = AnnotationHandler()
    handler.add_pending(1, RectShape(0.1, 0.1, 0.2, 0.05))
    assert handler.commit_pending_with_comment(1, "   ") is None
    assert len(handler.pending_for(1)) == 1
    assert handler.commit_pending_with_comment(2, "text") is None


def test_erase_pending_clears_selection():
    handler = AnnotationHandler()
    handler.add_pending(4, RectShape(0.1, 0.1, 0.2, 0.05))
    assert handler.selection.kind == "pending"
    assert handler.erase_pending(4, 0)
    assert handler.selection is None
    assert not handler.erase_pending(4, 0)


def test_erase_highlight_from_group_removes_empty_group():
    handler = AnnotationHandler()
    handler.add_pending(1, RectShape(0.1, 0.1, 0.2, 0.05))
    handler.add_pending(1, RectShape(0.3, 0.3, 0.2, 0.05))
    group = handler.commit_pending_with_comment(1, "note")

    assert handler.erase_highlight(group.id, 0)
    assert len(handler.find(group.id).shapes) == 1
    assert handler.erase_highlight(group.id, 0)
    assert handler.find(group.id) is None
    assert handler.selection is None


def test_comment_thread_edit_and_delete():
    handler = AnnotationHandler()
    annotation = handler.add_annotation(_highlight())
    assert handler.add_comment(annotation.id, "first")
    assert handler.add_comment(annotation.id, "second")
    assert handler.edit_comment(annotation.id, 1, "edited")
    assert handler.delete_comment(annotation.id, 0)
    assert [c.text for c in annotation.comments] == ["edited"]
    assert not handler.edit_comment(annotation.id, 5, "x")
    assert not handler.add_comment("missing", "x")


def test_add_note_rejects_blank_and_clamps_anchor():
    handler = AnnotationHandler()
    assert handler.add_note(1, Point(0.5, 0.5), "  ") is None
    note = handler.add_note(1, Point(1.2, -0.3), "memo", linked_text="selected")
    assert note.type == "comment"
    assert (note.anchor.x, note.anchor.y) == (0.95, 0.05)
    assert note.linked_text == "selected"


def test_move_note_only_moves_comments():
    handler = AnnotationHandler()
    note = handler.add_note(1, Point(0.5, 0.5), "memo")
    highlight = handler.add_annotation(_highlight())
    assert handler.move_note(note.id, Point(0.99, 0.0))
    assert (note.anchor.x, note.anchor.y) == (0.92, 0.02)
    assert not handler.move_note(highlight.id, Point(0.3, 0.3))


def test_text_markup_builds_lines_or_rects():
    handler = AnnotationHandler()
    rects = [RectShape(0.1, 0.2, 0.3, 0.1)]
    underline = handler.add_text_markup(1, "underline", rects, "word")
    highlight = handler.add_text_markup(1, "highlight", rects, "word")
    assert isinstance(underline.shapes[0], LineShape)
    assert isinstance(highlight.shapes[0], RectShape)
    assert underline.text == "word"
    assert handler.add_text_markup(1, "strike", []) is None


def test_type_filter_hides_groups_with_highlights():
    handler = AnnotationHandler()
    handler.add_annotation(_highlight())
    handler.add_pending(1, RectShape(0.1, 0.1, 0.2, 0.05))
    handler.commit_pending_with_comment(1, "grouped")
    handler.add_note(1, Point(0.5, 0.5), "memo")

    handler.set_type_visible("highlight", False)
    assert [a.type for a in handler.visible_annotations(1)] == ["comment"]
    handler.set_type_visible("highlight", True)
    assert len(handler.visible_annotations(1)) == 3


def test_reset_discards_everything():
    handler = AnnotationHandler()
    annotation = handler.add_annotation(_highlight())
    handler.select_annotation(annotation.id)
    handler.reset()
    assert handler.annotations == {}
    assert handler.selection is None


def test_all_annotations_ordered_by_page_then_insertion():
    handler = AnnotationHandler()
    handler.add_annotation(_highlight(page=2, color="#000001"))
    handler.add_annotation(_highlight(page=1, color="#000002"))
    handler.add_annotation(_highlight(page=2, color="#000003"))
    assert [a.color for a in handler.all_annotations()] == ["#000002", "#000001", "#000003"]


def test_undecodable_page_file_is_treated_as_empty(storage):
    with open(storage.get_path(annotations_key(3)), "wb") as f:
        f.write(b"[\xff\xfe garbage")
    handler = AnnotationHandler(storage)
    assert handler.annotations_for(3) == []
    assert handler.pending_for(3) == []


def test_stored_group_without_highlights_is_skipped(storage):
    valid = _highlight(page=2)
    storage.save_json(annotations_key(2), [
        {"id": "g-1", "page_number": 2, "type": "group", "color": "#FFEB3B",
         "created_at": "2024-01-01T00:00:00", "shapes": [], "comments": [{"text": "orphan"}]},
        valid.to_dict(),
    ])
    handler = AnnotationHandler(storage)
    assert [a.id for a in handler.annotations_for(2)] == [valid.id]
