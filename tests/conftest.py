import time

import pytest
from PyQt6.QtCore import QCoreApplication

from services.storage_service import StorageService


@pytest.fixture(scope="session")
def qapp():
    """シグナルとタイマーを動かすためのイベントループ。"""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def storage(tmp_path):
    return StorageService(str(tmp_path / "data"))


@pytest.fixture
def wait_until(qapp):
    """条件が満たされるまでイベントを処理しながら待つ。"""
    def _wait(predicate, timeout_ms=3000):
        deadline = time.monotonic() + timeout_ms / 1000
        while time.monotonic() < deadline:
            qapp.processEvents()
            if predicate():
                return True
            time.sleep(0.01)
        qapp.processEvents()
        return predicate()
    return _wait
