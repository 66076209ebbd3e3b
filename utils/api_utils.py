# utils/api_utils.py
import logging
from typing import Dict, Any, Optional

import requests

logger = logging.getLogger(__name__)


class APIUtils:
    """API連携に関する共通処理を提供するユーティリティクラス。"""

    @staticmethod
    def auth_headers(token: str) -> Dict[str, str]:
        """Bearerトークンの認証ヘッダーを作る。トークンが空なら空の辞書。"""
        return {"Authorization": f"Bearer {token}"} if token else {}

    @staticmethod
    def make_api_request(
        url: str,
        method: str = "POST",
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: int = 15,
        session: Optional[requests.Session] = None,
    ) -> Dict[str, Any]:
        """指定されたURLにAPIリクエストを送信し、JSONレスポンスを返す。

        Args:
            url (str): リクエストを送信するAPIエンドポイントのURL。
            method (str): HTTPメソッド（例: "GET", "POST"）。
            data (Optional[Dict[str, Any]]): リクエストボディとして送信するデータ（JSON）。
            params (Optional[Dict[str, Any]]): クエリパラメータ。
            headers (Optional[Dict[str, str]]): 追加のHTTPヘッダー。
            timeout (int): タイムアウト秒数。
            session (Optional[requests.Session]): 使用するセッション。省略時は requests を直接使う。

        Returns:
            Dict[str, Any]: APIからのJSONレスポンス。

        Raises:
            requests.exceptions.RequestException: ネットワークエラーやHTTPエラーステータスの場合。
        """
        requester = session if session is not None else requests
        try:
            response = requester.request(
                method, url, json=data, params=params, headers=headers, timeout=timeout
            )
            response.raise_for_status()  # 2xx以外のステータスコードで例外を発生させる
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error("API request to %s failed: %s", url, e)
            raise

    @staticmethod
    def handle_api_response(response_json: Dict[str, Any]) -> Any:
        """APIレスポンスのJSONを解釈し、`data` 部分を取り出す。

        Args:
            response_json (Dict[str, Any]): APIから返されたパース済みのJSONデータ。

        Returns:
            Any: `data` フィールドの内容。無い場合はNone。

        Raises:
            ValueError: レスポンスが辞書でない、またはエラーを含む場合。
        """
        if not isinstance(response_json, dict):
            raise ValueError("API Error: レスポンスの形式が不正です")
        if "error" in response_json and response_json["error"]:
            raise ValueError(f"API Error: {response_json['error']}")

        return response_json.get("data")
