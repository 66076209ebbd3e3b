# services/base_service.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, TypeVar, Generic, Any, Optional

if TYPE_CHECKING:
    from services.api_service import APIService
    from services.storage_service import StorageService

# データモデルを表すジェネリック型を定義
T = TypeVar('T')


class BaseService(Generic[T], ABC):
    """
    永続化を伴うサービスクラスの基底となる抽象クラス（ABC）。

    データロードとセーブの共通インターフェースを定義します。
    具象サービスクラスは、特定のデータモデル（例: Bookmark の一覧）を
    扱うために、このクラスを継承し、抽象メソッドを実装する必要があります。

    Attributes:
        api_service (Optional[APIService]): API連携サービスへの参照。
        storage_service (Optional[StorageService]): ローカルストレージサービスへの参照。
    """

    def __init__(
        self,
        api_service: Optional[APIService] = None,
        storage_service: Optional[StorageService] = None
    ) -> None:
        self.api_service = api_service
        self.storage_service = storage_service

    @abstractmethod
    def load_data(self, identifier: Any = None) -> Optional[T]:
        """
        指定された識別子を使用してデータを読み込むための抽象メソッド。

        Args:
            identifier (Any): データを一意に識別するためのキー。

        Returns:
            Optional[T]: 読み込まれたデータ。見つからない場合はNone。
        """

    @abstractmethod
    def save_data(self, data: T) -> None:
        """
        データを永続化するための抽象メソッド。

        Args:
            data (T): 保存するデータ。
        """
