from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Tuple, Union

from PyQt6.QtCore import QObject, pyqtSignal

from models.annotation_models import Annotation
from models.geometry_models import FreehandShape, Point, RectShape, Shape
from utils.app_config import AppConfig
from utils.geometry import bounding_rect, clamp, is_degenerate, normalize, rect_from_points
from utils.id_utils import new_id, now_iso

if TYPE_CHECKING:
    from ui.handlers.annotation_handler import AnnotationHandler

logger = logging.getLogger(__name__)

TOOL_TYPES = ("select", "highlight", "underline", "strike", "freehand", "comment", "bookmark", "clip")
DRAWING_TOOLS = ("highlight", "freehand", "clip")
FREEHAND_MODES = ("freehand", "straight")


@dataclass
class DrawingSession:
    """ポインタが押されている間の描画中の図形。座標はピクセル値で保持する。"""
    tool: str
    page_number: int
    container_size: Tuple[float, float]
    start: Point
    last: Point
    points: List[Point] = field(default_factory=list)
    mode: str = "freehand"
    brush_size: float = 25.6
    opacity: float = 1.0
    pressure: float = 1.0
    pressure_enabled: bool = False
    color: str = ""


class DrawingHandler(QObject):
    """
    ポインタ操作から図形を作る描画ステートマシン（idle → drawing → idle）。

    ハイライト・フリーハンド・範囲クリップの3つのツールで描画を受け付け、
    ポインタを離した時点で図形を正規化して確定します。

    Signals:
        area_selected (pyqtSignal): クリップツールで範囲が確定した際に (ページ, RectShape) を送信します。
        comment_requested (pyqtSignal): ペンディングに追加され、コメント入力が必要になったページを送信します。
        workspace_comment_requested (pyqtSignal): フリーハンドのコメントモードで (ページ, 外接矩形) を送信します。
        drawing_changed (pyqtSignal): 描画中の図形が変化した際に通知します（プレビュー更新用）。
    """
    area_selected = pyqtSignal(int, object)
    comment_requested = pyqtSignal(int)
    workspace_comment_requested = pyqtSignal(int, object)
    drawing_changed = pyqtSignal()

    def __init__(self, annotation_handler: AnnotationHandler, config: Optional[AppConfig] = None,
                 parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.annotation_handler = annotation_handler
        self.config = config or AppConfig()

        self.current_tool: str = "select"
        self.highlight_color: str = self.config.highlight_colors[0]
        self.freehand_color: str = self.config.freehand_colors[0]
        self.brush_size: float = self.config.default_brush_size
        self.opacity: float = self.config.default_opacity
        self.freehand_mode: str = "freehand"
        self.pressure_enabled: bool = False
        self.pending_mode: bool = False
        self.freehand_comment_mode: bool = False
        self.snap_to_text: bool = False

        self.session: Optional[DrawingSession] = None

    # --- ツール設定 ---
    def set_tool(self, tool: str) -> None:
        if tool not in TOOL_TYPES:
            raise ValueError(f"未知のツールです: {tool}")
        self.cancel()
        self.current_tool = tool

    @property
    def is_drawing(self) -> bool:
        return self.session is not None

    @property
    def active_color(self) -> str:
        return self.freehand_color if self.current_tool == "freehand" else self.highlight_color

    def set_color(self, color: str) -> None:
        if self.current_tool == "freehand":
            self.freehand_color = color
        else:
            self.highlight_color = color

    def set_brush_size(self, size: float) -> None:
        self.brush_size = size
        if self.session:
            self.session.brush_size = size
            self.drawing_changed.emit()

    def set_opacity(self, opacity: float) -> None:
        self.opacity = clamp(opacity, 0.05, 1.0)
        if self.session:
            self.session.opacity = self.opacity
            self.drawing_changed.emit()

    def set_pressure_enabled(self, enabled: bool) -> None:
        self.pressure_enabled = enabled
        if self.session:
            self.session.pressure_enabled = enabled
            if not enabled:
                self.session.pressure = 1.0
            self.drawing_changed.emit()

    def set_freehand_mode(self, mode: str) -> None:
        if mode not in FREEHAND_MODES:
            raise ValueError(f"未知のフリーハンドモードです: {mode}")
        self.freehand_mode = mode

    def pressure_factor(self, pressure: Optional[float]) -> float:
        """筆圧を線幅の倍率に変換する。無効時・未報告時は1。"""
        if not self.pressure_enabled or pressure is None:
            return 1.0
        raw = pressure if pressure > 0 else 1.0
        return clamp(raw, self.config.pressure_min, self.config.pressure_max)

    # --- ポインタイベント ---
    def pointer_down(self, page_number: int, point: Point, container_size: Tuple[float, float],
                     on_background: bool = True, pressure: Optional[float] = None) -> bool:
        """描画を開始する。

        Args:
            page_number (int): 描画対象のページ。
            point (Point): ポインタ位置（ピクセル）。
            container_size (Tuple[float, float]): ページの描画サイズ（幅, 高さ）。
            on_background (bool): ポインタが既存の図形ではなくページの背景上にあるか。
            pressure (Optional[float]): 入力デバイスが報告する筆圧。

        Returns:
            bool: 描画状態に入った場合はTrue。
        """
        if self.current_tool not in DRAWING_TOOLS or not on_background:
            return False
        tool = self.current_tool
        session = DrawingSession(
            tool=tool,
            page_number=page_number,
            container_size=container_size,
            start=point,
            last=point,
            color=self.active_color,
        )
        if tool == "freehand":
            session.mode = self.freehand_mode
            session.points = [point, point] if self.freehand_mode == "straight" else [point]
            session.brush_size = self.brush_size
            session.opacity = self.opacity
            session.pressure_enabled = self.pressure_enabled
            session.pressure = self.pressure_factor(pressure)
        self.session = session
        self.drawing_changed.emit()
        return True

    def pointer_move(self, point: Point, pressure: Optional[float] = None) -> None:
        session = self.session
        if session is None:
            return
        session.last = point
        if session.tool == "freehand":
            if session.mode == "straight":
                session.points = [session.points[0], point]
            else:
                session.points.append(point)
            if pressure is not None:
                session.pressure = self.pressure_factor(pressure)
        self.drawing_changed.emit()

    def cancel(self) -> None:
        if self.session is None:
            return
        self.session = None
        self.drawing_changed.emit()

    def pointer_up(self, point: Optional[Point]) -> Optional[Union[Annotation, Shape, RectShape]]:
        """描画を終了し、図形を確定する。

        Args:
            point (Optional[Point]): 離した位置（ピクセル）。ページ外で離した場合はNone。

        Returns:
            Optional[Union[Annotation, Shape, RectShape]]: 作成された注釈、ペンディングに追加した図形、
            またはクリップ範囲。何も作られなかった場合はNone。
        """
        session = self.session
        self.session = None
        if session is None:
            return None
        self.drawing_changed.emit()
        if point is None:
            return None

        width, height = session.container_size
        if session.tool in ("highlight", "clip"):
            rect = normalize(rect_from_points(session.start, point), width, height)
            if is_degenerate(rect, self.config.min_shape_size):
                return None
            if session.tool == "clip":
                self.area_selected.emit(session.page_number, rect)
                return rect
            return self._commit(session, rect)

        if session.mode == "straight":
            merged = [session.points[0], point]
        else:
            merged = session.points + [point]
        if len(merged) < 2 or all(p == merged[0] for p in merged):
            return None
        factor = session.pressure if session.pressure_enabled else 1.0
        stroke = normalize(FreehandShape(
            points=merged,
            stroke_width=session.brush_size * factor,
            opacity=session.opacity,
            mode=session.mode,
        ), width, height)
        result = self._commit(session, stroke)
        if self.freehand_comment_mode:
            bounds = bounding_rect(stroke.points)
            if bounds is not None:
                self.workspace_comment_requested.emit(session.page_number, bounds)
        return result

    def _commit(self, session: DrawingSession, shape: Shape) -> Union[Annotation, Shape]:
        if self.pending_mode:
            shape.color = session.color
            self.annotation_handler.add_pending(session.page_number, shape)
            self.comment_requested.emit(session.page_number)
            return shape
        annotation = Annotation(
            id=new_id("ann"),
            page_number=session.page_number,
            type=session.tool,
            color=session.color,
            created_at=now_iso(),
            shapes=[shape],
        )
        return self.annotation_handler.add_annotation(annotation)

    def preview_shape(self) -> Optional[Shape]:
        """描画中の図形を正規化座標で返す。"""
        session = self.session
        if session is None:
            return None
        width, height = session.container_size
        if session.tool == "freehand":
            factor = session.pressure if session.pressure_enabled else 1.0
            return normalize(FreehandShape(
                points=list(session.points),
                stroke_width=session.brush_size * factor,
                opacity=session.opacity,
                mode=session.mode,
                color=session.color,
            ), width, height)
        rect = normalize(rect_from_points(session.start, session.last), width, height)
        rect.color = session.color
        return rect
