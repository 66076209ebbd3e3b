import pytest

from models.geometry_models import FreehandShape, LineShape, Point, RectShape, shape_from_dict
from utils.geometry import (
    bounding_rect, clamp, crop_box, denormalize, is_degenerate, normalize,
    rect_from_points, shape_bounds, shape_fingerprint, text_markup_lines,
)


def test_normalize_rect_scales_by_container():
    rect = normalize(RectShape(100, 50, 200, 100), 400, 200)
    assert (rect.x, rect.y, rect.width, rect.height) == (0.25, 0.25, 0.5, 0.5)


def test_normalize_zero_container_returns_input():
    rect = RectShape(10, 20, 30, 40)
    assert normalize(rect, 0, 100) is rect
    assert denormalize(rect, 100, -1) is rect


def test_denormalize_inverts_normalize_for_freehand():
    stroke = FreehandShape(points=[Point(10, 20), Point(30, 40)], stroke_width=5.2, color="#111827")
    restored = denormalize(normalize(stroke, 200, 100), 200, 100)
    assert [(p.x, p.y) for p in restored.points] == pytest.approx([(10, 20), (30, 40)])
    assert restored.stroke_width == 5.2
    assert restored.color == "#111827"


def test_normalize_does_not_mutate_input():
    line = LineShape(0, 10, 100, 10)
    normalize(line, 100, 100)
    assert line.x2 == 100


def test_rect_from_points_orders_corners():
    rect = rect_from_points(Point(0.6, 0.8), Point(0.2, 0.3))
    assert (rect.x, rect.y) == (0.2, 0.3)
    assert rect.width == pytest.approx(0.4)
    assert rect.height == pytest.approx(0.5)


def test_bounding_rect_enforces_minimum_size_and_page_bounds():
    assert bounding_rect([]) is None
    rect = bounding_rect([Point(1.0, 1.0)])
    assert rect.width == pytest.approx(0.005)
    assert rect.x + rect.width <= 1.0
    assert rect.y + rect.height <= 1.0


def test_shape_bounds_of_line():
    bounds = shape_bounds(LineShape(0.1, 0.5, 0.4, 0.5))
    assert bounds.x == pytest.approx(0.1)
    assert bounds.width == pytest.approx(0.3)
    assert bounds.height == pytest.approx(0.005)


def test_is_degenerate():
    assert is_degenerate(RectShape(0, 0, 0.005, 0.5))
    assert not is_degenerate(RectShape(0, 0, 0.2, 0.2))


def test_clamp():
    assert clamp(2, 0, 1) == 1
    assert clamp(-1, 0, 1) == 0
    assert clamp(0.5, 0, 1) == 0.5


def test_fingerprint_distinguishes_color_and_ignores_id():
    a = RectShape(0.1, 0.2, 0.3, 0.4, id="a", color="#fff")
    b = RectShape(0.1, 0.2, 0.3, 0.4, id="b", color="#fff")
    c = RectShape(0.1, 0.2, 0.3, 0.4, color="#000")
    assert shape_fingerprint(a) == shape_fingerprint(b)
    assert shape_fingerprint(a) != shape_fingerprint(c)


def test_text_markup_lines_positions():
    rects = [RectShape(0.1, 0.2, 0.3, 0.1)]
    underline = text_markup_lines(rects, "underline")[0]
    strike = text_markup_lines(rects, "strike")[0]
    assert underline.y1 == pytest.approx(0.29)
    assert strike.y1 == pytest.approx(0.25)
    assert (underline.x1, underline.x2) == pytest.approx((0.1, 0.4))
    with pytest.raises(ValueError):
        text_markup_lines(rects, "wavy")


def test_crop_box_is_at_least_one_pixel():
    assert crop_box(RectShape(0.5, 0.5, 0.0, 0.0), 100, 100) == (50, 50, 51, 51)
    assert crop_box(RectShape(-0.1, 0.0, 2.0, 0.5), 100, 100) == (0, 0, 100, 50)


def test_shape_from_dict_infers_kind_for_legacy_data():
    assert isinstance(shape_from_dict({"points": [{"x": 0.1, "y": 0.2}]}), FreehandShape)
    assert isinstance(shape_from_dict({"x1": 0, "y1": 0, "x2": 1, "y2": 0}), LineShape)
    assert isinstance(shape_from_dict({"x": 0, "y": 0, "width": 1, "height": 1}), RectShape)


def test_shape_from_dict_null_stroke_width_defaults():
    shape = shape_from_dict({"kind": "freehand", "points": [], "stroke_width": None})
    assert shape.stroke_width == 2.0


def test_shape_from_dict_rejects_unknown_kind():
    with pytest.raises(ValueError):
        shape_from_dict({"kind": "ellipse"})


def test_shape_round_trip_keeps_id_and_color():
    shape = RectShape(0.1, 0.2, 0.3, 0.4, id="s1", color="#FFEB3B")
    assert shape_from_dict(shape.to_dict()) == shape
