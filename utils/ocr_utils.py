# utils/ocr_utils.py
"""文字認識（OCR）ワーカー。

Tesseract の起動確認と画像からのテキスト抽出を行います。
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

import pytesseract
from PIL import Image

from models.ocr_models import OcrResult

logger = logging.getLogger(__name__)


class OcrWorkerError(Exception):
    """OCRワーカーの初期化または認識に失敗した場合の例外。"""


class OcrWorker(ABC):
    """OCRワーカーの共通インターフェース。"""

    @abstractmethod
    def init(self) -> None:
        """ワーカーを使用可能な状態にする。失敗時は OcrWorkerError を送出する。"""

    @abstractmethod
    def recognize(self, image: Image.Image) -> OcrResult:
        """画像からテキストを認識する。"""

    def terminate(self) -> None:
        """ワーカーを解放する。"""


class TesseractWorker(OcrWorker):
    """pytesseract を使ったOCRワーカー。

    Attributes:
        language (str): Tesseract の言語コード（例: 'eng', 'jpn'）。
    """

    def __init__(self, language: str = "eng") -> None:
        self.language = language
        self.ready = False

    def init(self) -> None:
        try:
            version = pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            raise OcrWorkerError(f"Tesseract を起動できません: {e}") from e
        logger.info("Tesseract OCR version: %s", version)
        self.ready = True

    def recognize(self, image: Image.Image) -> OcrResult:
        if not self.ready:
            raise OcrWorkerError("OCRワーカーが初期化されていません")
        try:
            data = pytesseract.image_to_data(
                image,
                lang=self.language,
                output_type=pytesseract.Output.DICT,
            )
        except pytesseract.TesseractError as e:
            raise OcrWorkerError(str(e)) from e
        return parse_ocr_data(data)

    def terminate(self) -> None:
        self.ready = False


def parse_ocr_data(data: Dict[str, List[Any]]) -> OcrResult:
    """pytesseract の image_to_data 出力から本文と平均信頼度を組み立てる。

    単語は行ごとに空白で、行・段落の区切りは改行でつなぎます。
    信頼度は認識された単語の平均値を四捨五入した整数です。
    """
    lines: List[str] = []
    current: List[str] = []
    current_key = None
    confidences: List[float] = []

    for i, raw in enumerate(data.get("text", [])):
        word = (raw or "").strip()
        if not word:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        if current_key is not None and key != current_key:
            lines.append(" ".join(current))
            current = []
        current_key = key
        current.append(word)
        conf = float(data["conf"][i])
        if conf >= 0:
            confidences.append(conf)
    if current:
        lines.append(" ".join(current))

    confidence = round(sum(confidences) / len(confidences)) if confidences else 0
    return OcrResult(text="\n".join(lines).strip(), confidence=int(confidence))
