import pytest

from models.geometry_models import FreehandShape, Point, RectShape
from ui.handlers.annotation_handler import AnnotationHandler
from ui.handlers.drawing_handler import DrawingHandler
from utils.app_config import AppConfig

SIZE = (200.0, 100.0)


@pytest.fixture
def handlers():
    annotation_handler = AnnotationHandler()
    return annotation_handler, DrawingHandler(annotation_handler, AppConfig())


def test_select_tool_does_not_draw(handlers):
    _, drawing = handlers
    assert not drawing.pointer_down(1, Point(10, 10), SIZE)
    assert not drawing.is_drawing


def test_pointer_on_existing_shape_does_not_draw(handlers):
    _, drawing = handlers
    drawing.set_tool("highlight")
    assert not drawing.pointer_down(1, Point(10, 10), SIZE, on_background=False)


def test_unknown_tool_is_rejected(handlers):
    _, drawing = handlers
    with pytest.raises(ValueError):
        drawing.set_tool("eraser")


def test_highlight_drag_creates_normalized_annotation(handlers):
    annotations, drawing = handlers
    drawing.set_tool("highlight")
    drawing.pointer_down(2, Point(150, 80), SIZE)
    drawing.pointer_move(Point(100, 60))
    annotation = drawing.pointer_up(Point(50, 20))

    rect = annotation.shapes[0]
    assert annotation.type == "highlight"
    assert annotation.page_number == 2
    assert (rect.x, rect.y) == pytest.approx((0.25, 0.2))
    assert (rect.width, rect.height) == pytest.approx((0.5, 0.6))
    assert annotations.annotations_for(2) == [annotation]
    assert not drawing.is_drawing


def test_tiny_highlight_is_discarded(handlers):
    annotations, drawing = handlers
    drawing.set_tool("highlight")
    drawing.pointer_down(1, Point(10, 10), SIZE)
    assert drawing.pointer_up(Point(11, 50)) is None
    assert annotations.annotations_for(1) == []


def test_release_outside_page_commits_nothing(handlers):
    annotations, drawing = handlers
    drawing.set_tool("highlight")
    drawing.pointer_down(1, Point(10, 10), SIZE)
    assert drawing.pointer_up(None) is None
    assert annotations.annotations_for(1) == []


def test_clip_emits_area_instead_of_annotation(handlers):
    annotations, drawing = handlers
    areas = []
    drawing.area_selected.connect(lambda page, rect: areas.append((page, rect)))
    drawing.set_tool("clip")
    drawing.pointer_down(5, Point(0, 0), SIZE)
    rect = drawing.pointer_up(Point(100, 50))

    assert isinstance(rect, RectShape)
    assert areas == [(5, rect)]
    assert annotations.annotations_for(5) == []


def test_freehand_stroke_keeps_points_and_brush(handlers):
    annotations, drawing = handlers
    drawing.set_tool("freehand")
    drawing.set_brush_size(5.2)
    drawing.pointer_down(1, Point(0, 0), SIZE)
    drawing.pointer_move(Point(20, 10))
    drawing.pointer_move(Point(40, 20))
    annotation = drawing.pointer_up(Point(60, 30))

    stroke = annotation.shapes[0]
    assert isinstance(stroke, FreehandShape)
    assert len(stroke.points) == 4
    assert stroke.points[-1].x == pytest.approx(0.3)
    assert stroke.stroke_width == pytest.approx(5.2)
    assert stroke.opacity == 1.0
    assert annotation.color == drawing.freehand_color


def test_straight_mode_keeps_two_points(handlers):
    _, drawing = handlers
    drawing.set_tool("freehand")
    drawing.set_freehand_mode("straight")
    drawing.pointer_down(1, Point(0, 0), SIZE)
    drawing.pointer_move(Point(30, 30))
    drawing.pointer_move(Point(50, 40))
    stroke = drawing.pointer_up(Point(100, 50)).shapes[0]
    assert stroke.mode == "straight"
    assert [(p.x, p.y) for p in stroke.points] == pytest.approx([(0, 0), (0.5, 0.5)])


def test_pressure_scales_width_within_bounds(handlers):
    _, drawing = handlers
    drawing.set_tool("freehand")
    drawing.set_brush_size(10)
    drawing.set_pressure_enabled(True)
    assert drawing.pressure_factor(None) == 1.0
    assert drawing.pressure_factor(0.0) == 1.0
    assert drawing.pressure_factor(0.1) == 0.25
    assert drawing.pressure_factor(2.0) == 1.35

    drawing.pointer_down(1, Point(0, 0), SIZE, pressure=0.5)
    stroke = drawing.pointer_up(Point(10, 10)).shapes[0]
    assert stroke.stroke_width == pytest.approx(5.0)


def test_pressure_disabled_ignores_device(handlers):
    _, drawing = handlers
    drawing.set_tool("freehand")
    drawing.set_brush_size(10)
    drawing.pointer_down(1, Point(0, 0), SIZE, pressure=0.3)
    stroke = drawing.pointer_up(Point(10, 10)).shapes[0]
    assert stroke.stroke_width == pytest.approx(10)


def test_pending_mode_collects_shapes_and_requests_comment(handlers):
    annotations, drawing = handlers
    requested = []
    drawing.comment_requested.connect(requested.append)
    drawing.pending_mode = True
    drawing.set_tool("highlight")
    drawing.set_color("#4CAF50")
    drawing.pointer_down(3, Point(0, 0), SIZE)
    shape = drawing.pointer_up(Point(100, 50))

    assert annotations.annotations_for(3) == []
    assert annotations.pending_for(3) == [shape]
    assert shape.color == "#4CAF50"
    assert requested == [3]


def test_freehand_comment_mode_requests_workspace_comment(handlers):
    _, drawing = handlers
    requests = []
    drawing.workspace_comment_requested.connect(lambda page, rect: requests.append((page, rect)))
    drawing.freehand_comment_mode = True
    drawing.set_tool("freehand")
    drawing.pointer_down(7, Point(20, 10), SIZE)
    drawing.pointer_up(Point(120, 60))

    page, rect = requests[0]
    assert page == 7
    assert (rect.x, rect.y) == pytest.approx((0.1, 0.1))
    assert (rect.width, rect.height) == pytest.approx((0.5, 0.5))


def test_preview_follows_pointer(handlers):
    _, drawing = handlers
    drawing.set_tool("highlight")
    assert drawing.preview_shape() is None
    drawing.pointer_down(1, Point(0, 0), SIZE)
    drawing.pointer_move(Point(100, 50))
    preview = drawing.preview_shape()
    assert (preview.width, preview.height) == pytest.approx((0.5, 0.5))
    drawing.cancel()
    assert drawing.preview_shape() is None


def test_color_applies_to_active_tool(handlers):
    _, drawing = handlers
    drawing.set_tool("freehand")
    drawing.set_color("#EF4444")
    drawing.set_tool("highlight")
    drawing.set_color("#2196F3")
    assert drawing.freehand_color == "#EF4444"
    assert drawing.highlight_color == "#2196F3"
    assert drawing.active_color == "#2196F3"


def test_opacity_is_clamped(handlers):
    _, drawing = handlers
    drawing.set_opacity(0.0)
    assert drawing.opacity == 0.05
    drawing.set_opacity(3.0)
    assert drawing.opacity == 1.0


def test_freehand_click_without_movement_is_discarded(handlers):
    annotations, drawing = handlers
    drawing.set_tool("freehand")
    drawing.pointer_down(1, Point(40, 40), SIZE)
    assert drawing.pointer_up(Point(40, 40)) is None
    assert annotations.annotations_for(1) == []
    assert not drawing.is_drawing
