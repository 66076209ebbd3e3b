from __future__ import annotations
from typing import List, Optional

from PyQt6.QtCore import Qt, QPointF
from PyQt6.QtGui import QPainter, QPen, QColor, QBrush, QPaintEvent
from PyQt6.QtWidgets import QWidget

from models.workspace_models import Connector


class ConnectorOverlay(QWidget):
    """
    文書ペインとワークスペースの上に重ねて、コネクタの線を描画する透明なレイヤー。

    マウスイベントは透過させ、下のウィジェットの操作を妨げません。
    コネクタの座標はこのウィジェットの左上を原点とします。
    """
    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents, True)
        self.setAttribute(Qt.WidgetAttribute.WA_NoSystemBackground, True)
        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground, True)
        self.connectors: List[Connector] = []
        self.color = QColor("#2563eb")

    def set_connectors(self, connectors: List[Connector]) -> None:
        self.connectors = list(connectors)
        self.update()

    def paintEvent(self, event: QPaintEvent) -> None:
        if not self.connectors:
            return
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        line_color = QColor(self.color)
        line_color.setAlphaF(0.7)
        painter.setPen(QPen(line_color, 1.5, Qt.PenStyle.DashLine))
        for connector in self.connectors:
            painter.drawLine(QPointF(connector.start.x, connector.start.y),
                             QPointF(connector.end.x, connector.end.y))
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(QBrush(self.color))
        for connector in self.connectors:
            painter.drawEllipse(QPointF(connector.start.x, connector.start.y), 3.5, 3.5)
            painter.drawEllipse(QPointF(connector.end.x, connector.end.y), 3.5, 3.5)
        painter.end()
