# utils/id_utils.py
"""ID・タイムスタンプ生成の共通処理。"""
import datetime
import uuid


def new_id(prefix: str) -> str:
    """`{prefix}-{ランダム16進}` 形式の一意なIDを生成する。"""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def now_iso() -> str:
    """現在時刻（UTC）をISO 8601形式で返す。"""
    return datetime.datetime.now(datetime.timezone.utc).isoformat()
