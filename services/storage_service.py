# services/storage_service.py
import json
import logging
import os
from typing import Dict, Any, Optional, Union, List

logger = logging.getLogger(__name__)

BOOKMARKS_KEY = "bookmarks"
WORKSPACE_KEY = "workspace-state"


def annotations_key(page_number: int) -> str:
    return f"annotations-page-{page_number}"


def pending_key(page_number: int) -> str:
    return f"pending-annotations-page-{page_number}"


class StorageService:
    """ローカルファイルシステムへのデータ永続化を管理するサービスクラス。

    キーごとに1つのJSONファイル（`{key}.json`）を保存・読み込みします。
    """

    def __init__(self, base_path: str = "data") -> None:
        """StorageServiceのコンストラクタ。

        Args:
            base_path (str): データを保存する基準ディレクトリのパス。
                             存在しない場合は自動的に作成されます。
        """
        self.base_path = base_path
        os.makedirs(self.base_path, exist_ok=True)

    def get_path(self, key: str) -> str:
        """キーに対応するJSONファイルの完全なパスを取得する。

        Args:
            key (str): 保存キー（例: 'annotations-page-3'）。

        Returns:
            str: 完全なファイルパス。
        """
        return os.path.join(self.base_path, f"{key}.json")

    def save_json(self, key: str, data: Union[Dict[str, Any], List[Any]]) -> bool:
        """データをJSONファイルとしてローカルに保存する。

        Args:
            key (str): 保存キー。
            data (Union[Dict, List]): 保存するデータ（辞書またはリスト）。

        Returns:
            bool: 保存に成功した場合はTrue。
        """
        file_path = self.get_path(key)
        try:
            with open(file_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=4)
            logger.debug("データを %s に保存しました。", file_path)
            return True
        except (OSError, TypeError) as e:
            logger.error("ファイル保存中にエラーが発生しました: %s, %s", file_path, e)
            return False

    def load_json(self, key: str) -> Optional[Union[Dict[str, Any], List[Any]]]:
        """ローカルのJSONファイルからデータを読み込む。

        Args:
            key (str): 保存キー。

        Returns:
            Optional[Union[Dict, List]]: 読み込まれたデータ。ファイルが存在しない・壊れている場合はNone。
        """
        file_path = self.get_path(key)
        if not os.path.exists(file_path):
            return None
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("ファイル読み込み中にエラーが発生しました: %s, %s", file_path, e)
            return None

    def load_list(self, key: str) -> List[Any]:
        """リストとして保存されたデータを読み込む。無い・形式が違う場合は空リスト。"""
        data = self.load_json(key)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning("リスト形式ではないデータを無視しました: %s", key)
            return []
        return data

    def remove(self, key: str) -> None:
        """キーに対応するファイルを削除する。存在しなければ何もしない。"""
        file_path = self.get_path(key)
        try:
            os.remove(file_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("ファイル削除中にエラーが発生しました: %s, %s", file_path, e)
