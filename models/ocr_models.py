# models/ocr_models.py
from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class OcrResult:
    """ページまたは領域の文字認識結果。

    Attributes:
        text (str): 認識されたテキスト（前後の空白は除去済み）。
        confidence (int): 平均信頼度（0〜100）。
    """
    text: str
    confidence: int

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "confidence": self.confidence}


@dataclass
class OcrProgress:
    """OCR進捗の表示用エントリ。完了・エラー後しばらくすると破棄される。"""
    progress: int
    status: str

    @property
    def is_error(self) -> bool:
        return self.status.startswith("Error")


@dataclass
class SearchResult:
    """全文検索のヒット一件。

    Attributes:
        id (str): `{ページ}-{位置}` 形式の識別子。
        page_number (int): ヒットしたページ。
        snippet (str): ヒット箇所の前後を含む抜粋。
        source (str): 'PDF'（テキストレイヤー）または 'OCR'。
    """
    id: str
    page_number: int
    snippet: str
    source: str
