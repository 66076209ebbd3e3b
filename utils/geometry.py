# utils/geometry.py
"""ページ座標（ピクセル）と正規化座標の変換、および図形に関する計算処理。

ここにある関数はすべて副作用を持たず、入力の図形を変更しません。
"""
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Tuple

from models.geometry_models import FreehandShape, LineShape, Point, RectShape, Shape

MIN_BOUNDING_SIZE = 0.005
MIN_SHAPE_SIZE = 0.01

UNDERLINE_OFFSET = 0.9
STRIKE_OFFSET = 0.5


def clamp(value: float, minimum: float, maximum: float) -> float:
    """値を [minimum, maximum] の範囲に収める。"""
    return max(minimum, min(maximum, value))


def _scale(shape: Shape, sx: float, sy: float) -> Shape:
    if isinstance(shape, RectShape):
        return replace(
            shape,
            x=shape.x * sx, y=shape.y * sy,
            width=shape.width * sx, height=shape.height * sy,
        )
    if isinstance(shape, LineShape):
        return replace(
            shape,
            x1=shape.x1 * sx, y1=shape.y1 * sy,
            x2=shape.x2 * sx, y2=shape.y2 * sy,
        )
    if isinstance(shape, FreehandShape):
        return replace(shape, points=[Point(p.x * sx, p.y * sy) for p in shape.points])
    raise ValueError(f"未知の図形です: {shape!r}")


def normalize(shape: Shape, container_width: float, container_height: float) -> Shape:
    """ピクセル座標の図形を、コンテナサイズに対する比率に変換する。

    コンテナの幅または高さが0以下の場合は、入力をそのまま返します。

    Args:
        shape (Shape): ピクセル座標の図形。
        container_width (float): 描画領域の幅。
        container_height (float): 描画領域の高さ。

    Returns:
        Shape: 正規化された新しい図形。
    """
    if container_width <= 0 or container_height <= 0:
        return shape
    return _scale(shape, 1.0 / container_width, 1.0 / container_height)


def denormalize(shape: Shape, container_width: float, container_height: float) -> Shape:
    """正規化座標の図形をピクセル座標に戻す。`normalize` の逆変換。"""
    if container_width <= 0 or container_height <= 0:
        return shape
    return _scale(shape, container_width, container_height)


def rect_from_points(start: Point, end: Point) -> RectShape:
    """ドラッグの始点と終点から、左上原点の矩形を作る。"""
    return RectShape(
        x=min(start.x, end.x),
        y=min(start.y, end.y),
        width=abs(end.x - start.x),
        height=abs(end.y - start.y),
    )


def bounding_rect(points: Sequence[Point]) -> Optional[RectShape]:
    """点列を囲む矩形を返す。点が無い場合はNone。

    幅・高さは最低 MIN_BOUNDING_SIZE を確保し、ページ内（0〜1）に収めます。
    """
    if not points:
        return None
    min_x = min(p.x for p in points)
    max_x = max(p.x for p in points)
    min_y = min(p.y for p in points)
    max_y = max(p.y for p in points)
    width = max(max_x - min_x, MIN_BOUNDING_SIZE)
    height = max(max_y - min_y, MIN_BOUNDING_SIZE)
    return RectShape(
        x=clamp(min_x, 0.0, 1.0 - width),
        y=clamp(min_y, 0.0, 1.0 - height),
        width=width,
        height=height,
    )


def shape_bounds(shape: Shape) -> Optional[RectShape]:
    """任意の図形の外接矩形を返す。"""
    if isinstance(shape, RectShape):
        return RectShape(x=shape.x, y=shape.y, width=shape.width, height=shape.height)
    if isinstance(shape, LineShape):
        return bounding_rect([Point(shape.x1, shape.y1), Point(shape.x2, shape.y2)])
    if isinstance(shape, FreehandShape):
        return bounding_rect(shape.points)
    raise ValueError(f"未知の図形です: {shape!r}")


def rect_center(rect: RectShape) -> Point:
    return Point(rect.x + rect.width / 2, rect.y + rect.height / 2)


def is_degenerate(rect: RectShape, min_size: float = MIN_SHAPE_SIZE) -> bool:
    """幅か高さのどちらかが min_size 未満なら True。"""
    return rect.width < min_size or rect.height < min_size


def _fmt(value: float) -> str:
    return f"{value:.4f}"


def shape_fingerprint(shape: Shape) -> str:
    """重複排除に使う図形の指紋（種類・座標・色・線幅）を返す。"""
    color = shape.color or ""
    if isinstance(shape, RectShape):
        coords = ":".join(_fmt(v) for v in (shape.x, shape.y, shape.width, shape.height))
        return f"rect:{coords}:{color}"
    if isinstance(shape, LineShape):
        coords = ":".join(_fmt(v) for v in (shape.x1, shape.y1, shape.x2, shape.y2))
        return f"line:{coords}:{color}"
    if isinstance(shape, FreehandShape):
        points = ";".join(f"{_fmt(p.x)},{_fmt(p.y)}" for p in shape.points)
        return f"fh:{points}:{color}:{_fmt(shape.stroke_width)}"
    raise ValueError(f"未知の図形です: {shape!r}")


def text_markup_lines(rects: Iterable[RectShape], kind: str) -> List[LineShape]:
    """テキスト矩形から下線／取り消し線の線分を作る。

    Args:
        rects (Iterable[RectShape]): 単語や行の矩形（正規化座標）。
        kind (str): 'underline' または 'strike'。

    Returns:
        List[LineShape]: 各矩形に対応する水平線。

    Raises:
        ValueError: kind が不正な場合。
    """
    if kind == "underline":
        offset = UNDERLINE_OFFSET
    elif kind == "strike":
        offset = STRIKE_OFFSET
    else:
        raise ValueError(f"線の種類が不正です: {kind}")
    lines = []
    for rect in rects:
        y = rect.y + rect.height * offset
        lines.append(LineShape(x1=rect.x, y1=y, x2=rect.x + rect.width, y2=y))
    return lines


def crop_box(rect: RectShape, image_width: int, image_height: int) -> Tuple[int, int, int, int]:
    """正規化矩形を画像上の切り抜き範囲 (left, top, right, bottom) に変換する。"""
    left = int(round(clamp(rect.x, 0.0, 1.0) * image_width))
    top = int(round(clamp(rect.y, 0.0, 1.0) * image_height))
    right = int(round(clamp(rect.x + rect.width, 0.0, 1.0) * image_width))
    bottom = int(round(clamp(rect.y + rect.height, 0.0, 1.0) * image_height))
    return left, top, max(right, left + 1), max(bottom, top + 1)
