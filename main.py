"""
アプリケーションのエントリーポイント。

このスクリプトは、設定ファイルとログ出力を初期化したうえでPyQt6アプリケーションを起動し、
メインウィンドウであるMainWindowを生成・表示して、イベントループを開始します。
また、プロジェクトのルートディレクトリをPythonのパスに追加し、
他のモジュール（ui, services, utilsなど）を正しくインポートできるように設定します。

設定ファイルのパスは環境変数 APP_CONFIG で指定できます（既定は config.json）。
"""
import logging
import sys
import os
from PyQt6.QtWidgets import QApplication

# このファイル(main.py)があるディレクトリの絶対パスを取得し、
# Pythonがモジュールを探しに行く場所のリスト（sys.path）に追加します。
current_dir: str = os.path.dirname(os.path.abspath(__file__))
if current_dir not in sys.path:
    sys.path.append(current_dir)

from services.storage_service import StorageService
from ui.main_window import MainWindow
from utils.app_config import AppConfig


def configure_logging(level_name: str) -> None:
    """ログレベル名（'INFO' など）からルートロガーを設定する。未知の名前は WARNING とみなす。"""
    level = getattr(logging, str(level_name).upper(), logging.WARNING)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    # 1. 設定を読み込み、ログ出力を初期化します。
    config: AppConfig = AppConfig.load(os.environ.get("APP_CONFIG", "config.json"))
    configure_logging(config.log_level)

    # 2. PyQtアプリケーションインスタンスを作成します。
    app: QApplication = QApplication(sys.argv)

    # 3. 永続化サービスとメインウィンドウを作成して表示します。
    storage_service: StorageService = StorageService(config.data_dir)
    window: MainWindow = MainWindow(config, storage_service)
    window.show()

    # 4. アプリケーションのイベントループを開始します。
    sys.exit(app.exec())
