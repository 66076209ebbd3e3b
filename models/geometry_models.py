# models/geometry_models.py
"""ページ上の図形を表すデータモデル。

すべての座標はページの描画サイズに対する比率（0〜1の正規化座標）で保持します。
図形は `kind` フィールドで種類を判別するタグ付きユニオンとして扱います。
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

SHAPE_KINDS = ("rect", "freehand", "line")


@dataclass
class Point:
    """正規化座標上の一点。

    Attributes:
        x (float): 横方向の位置（ページ幅に対する比率）。
        y (float): 縦方向の位置（ページ高さに対する比率）。
    """
    x: float
    y: float

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Point":
        return cls(x=float(data.get("x", 0.0)), y=float(data.get("y", 0.0)))


@dataclass
class RectShape:
    """矩形の図形（エリアハイライト、クリップ範囲など）。

    Attributes:
        x (float): 左上のX座標。
        y (float): 左上のY座標。
        width (float): 幅。
        height (float): 高さ。
        id (Optional[str]): 図形ID。サーバー由来の図形などで使用。
        color (Optional[str]): 描画色（#rrggbb）。
    """
    x: float
    y: float
    width: float
    height: float
    id: Optional[str] = None
    color: Optional[str] = None
    kind: str = field(default="rect", init=False)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind,
            "x": self.x, "y": self.y,
            "width": self.width, "height": self.height,
        }
        if self.id is not None:
            data["id"] = self.id
        if self.color is not None:
            data["color"] = self.color
        return data


@dataclass
class LineShape:
    """線分の図形（下線・取り消し線）。"""
    x1: float
    y1: float
    x2: float
    y2: float
    id: Optional[str] = None
    color: Optional[str] = None
    kind: str = field(default="line", init=False)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind,
            "x1": self.x1, "y1": self.y1,
            "x2": self.x2, "y2": self.y2,
        }
        if self.id is not None:
            data["id"] = self.id
        if self.color is not None:
            data["color"] = self.color
        return data


@dataclass
class FreehandShape:
    """フリーハンドのストローク。

    Attributes:
        points (List[Point]): ストロークを構成する点列（順序を保持）。
        stroke_width (float): 線幅（筆圧を反映済み）。
        opacity (float): 不透明度。
        mode (str): 'freehand'（連続）または 'straight'（直線）。
        id (Optional[str]): 図形ID。
        color (Optional[str]): 描画色。
    """
    points: List[Point] = field(default_factory=list)
    stroke_width: float = 2.0
    opacity: float = 1.0
    mode: str = "freehand"
    id: Optional[str] = None
    color: Optional[str] = None
    kind: str = field(default="freehand", init=False)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind,
            "points": [p.to_dict() for p in self.points],
            "stroke_width": self.stroke_width,
            "opacity": self.opacity,
            "mode": self.mode,
        }
        if self.id is not None:
            data["id"] = self.id
        if self.color is not None:
            data["color"] = self.color
        return data


Shape = Union[RectShape, FreehandShape, LineShape]


def shape_from_dict(data: Dict[str, Any]) -> Shape:
    """辞書から図形オブジェクトを復元する。

    `kind` が無い古い形式のデータは、フィールドの有無から種類を推定します。
    この推定は永続化データの読み込み時にのみ行い、以降は `kind` で判別します。

    Args:
        data (Dict[str, Any]): シリアライズされた図形データ。

    Returns:
        Shape: 復元された図形。

    Raises:
        ValueError: 未知の `kind` が指定されている場合。
    """
    kind = data.get("kind")
    if kind is None:
        if "points" in data:
            kind = "freehand"
        elif "x1" in data:
            kind = "line"
        else:
            kind = "rect"

    if kind == "rect":
        return RectShape(
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            width=float(data.get("width", 0.0)),
            height=float(data.get("height", 0.0)),
            id=data.get("id"),
            color=data.get("color"),
        )
    if kind == "line":
        return LineShape(
            x1=float(data.get("x1", 0.0)),
            y1=float(data.get("y1", 0.0)),
            x2=float(data.get("x2", 0.0)),
            y2=float(data.get("y2", 0.0)),
            id=data.get("id"),
            color=data.get("color"),
        )
    if kind == "freehand":
        stroke_width = data.get("stroke_width")
        if stroke_width is None:
            stroke_width = 2.0
        return FreehandShape(
            points=[Point.from_dict(p) for p in data.get("points") or []],
            stroke_width=float(stroke_width),
            opacity=float(data.get("opacity", 1.0)),
            mode=data.get("mode") or "freehand",
            id=data.get("id"),
            color=data.get("color"),
        )
    raise ValueError(f"未知の図形種別です: {kind}")
