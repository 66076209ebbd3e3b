# ui/components.py
"""
アプリケーション全体で再利用されるカスタムUIコンポーネントを提供します。

- OutsideClickFilter: 指定したウィジェットの外側がクリックされたことを通知する、アプリケーション全体のイベントフィルタ。
- ClickableLabel: クリックイベントを送信する機能を持つラベル。
"""
from __future__ import annotations
from typing import List, Optional

from PyQt6.QtWidgets import QApplication, QLabel, QWidget
from PyQt6.QtCore import Qt, QObject, QEvent, pyqtSignal
from PyQt6.QtGui import QMouseEvent


class OutsideClickFilter(QObject):
    """
    監視対象のウィジェットの外側でマウスが押されたことを検出するイベントフィルタ。

    QApplication全体にインストールされるため、選択中の項目があるときだけ
    `install()` し、選択が解除されたら必ず `remove()` します。

    Signals:
        clicked_outside (pyqtSignal): 監視対象の外側でマウスが押された際に通知します。
    """
    clicked_outside = pyqtSignal()

    def __init__(self, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._watched: List[QWidget] = []
        self._installed: bool = False

    @property
    def is_installed(self) -> bool:
        return self._installed

    def install(self, *watched: QWidget) -> None:
        """監視対象を設定してアプリケーションにインストールする。二重インストールはしない。"""
        self._watched = [w for w in watched if w is not None]
        app = QApplication.instance()
        if app is None or self._installed:
            return
        app.installEventFilter(self)
        self._installed = True

    def remove(self) -> None:
        app = QApplication.instance()
        if self._installed and app is not None:
            app.removeEventFilter(self)
        self._installed = False
        self._watched = []

    def _is_inside(self, obj: QObject) -> bool:
        if not isinstance(obj, QWidget):
            return False
        for widget in self._watched:
            if obj is widget or widget.isAncestorOf(obj):
                return True
        return False

    def eventFilter(self, obj: QObject, event: QEvent) -> bool:
        """
        マウス押下イベントを監視し、監視対象の外側であれば `clicked_outside` を送信する。

        イベント自体は消費せず、常に通常の処理に渡します。

        Args:
            obj (QObject): イベントの対象オブジェクト。
            event (QEvent): 発生したイベント。

        Returns:
            bool: 常にFalse。
        """
        if event.type() != QEvent.Type.MouseButtonPress or not self._watched:
            return False
        if isinstance(obj, QWidget) and not self._is_inside(obj):
            self.clicked_outside.emit()
        return False


class ClickableLabel(QLabel):
    """
    クリックされたときに`clicked`シグナルを送信するQLabel。
    ステータスバーのOCR進捗表示などで使用します。
    """
    clicked = pyqtSignal()

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.setCursor(Qt.CursorShape.PointingHandCursor)

    def mousePressEvent(self, event: QMouseEvent) -> None:
        """マウスの左ボタンが押されたときにclickedシグナルを送信する。"""
        if event.button() == Qt.MouseButton.LeftButton:
            self.clicked.emit()
        super().mousePressEvent(event)
