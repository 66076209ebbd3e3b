# services/ocr_service.py
"""ページ画像の文字認識（OCR）を管理するサービス。

認識処理はワーカースレッドで行い、結果はシグナルでメインスレッドに返します。
同時に実行できるページ認識ジョブは1つだけで、実行中の要求は待たせずに拒否します。
"""
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple, Union

from PIL import Image
from PyQt6.QtCore import QObject, QThread, QTimer, pyqtSignal

from models.geometry_models import RectShape
from models.ocr_models import OcrProgress, OcrResult, SearchResult
from utils.app_config import AppConfig
from utils.geometry import crop_box
from utils.ocr_utils import OcrWorker, OcrWorkerError, TesseractWorker
from utils.pdf_utils import PageRasterizer

logger = logging.getLogger(__name__)

ProgressKey = Union[int, str]

SNIPPET_RADIUS = 40


def area_progress_key(page_number: int) -> str:
    return f"clip-{page_number}"


class OcrJobThread(QThread):
    """1枚の画像をOCRワーカーで認識するためのワーカースレッド。

    Signals:
        result_ready (pyqtSignal): 認識に成功した際に OcrResult を送信します。
        error_occurred (pyqtSignal): 認識中にエラーが発生した際にエラーメッセージ（str）を送信します。
    """
    result_ready = pyqtSignal(object)
    error_occurred = pyqtSignal(str)

    def __init__(self, worker: OcrWorker, image: Image.Image, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.worker = worker
        self.image = image

    def run(self) -> None:
        try:
            result = self.worker.recognize(self.image)
            self.result_ready.emit(result)
        except OcrWorkerError as e:
            self.error_occurred.emit(str(e))
        except Exception as e:
            self.error_occurred.emit(f"予期せぬエラーが発生しました: {e}")


class OcrService(QObject):
    """OCRの実行・進捗・結果キャッシュを管理するクラス。

    `results` と `progress` はこのサービスが所有し、`shutdown()` で破棄されます。

    Signals:
        page_finished (pyqtSignal): (ページ番号, OcrResult または None)。
        area_extracted (pyqtSignal): (ページ番号, RectShape, OcrResult または None)。
        progress_changed (pyqtSignal): 進捗マップが変化した際に通知します。
        worker_init_failed (pyqtSignal): ワーカーの初期化に失敗した際に一度だけ通知します。
        all_pages_finished (pyqtSignal): 全ページOCRの完了時に処理したページ数を通知します。
    """
    page_finished = pyqtSignal(int, object)
    area_extracted = pyqtSignal(int, object, object)
    progress_changed = pyqtSignal()
    worker_init_failed = pyqtSignal(str)
    all_pages_finished = pyqtSignal(int)

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        worker_factory: Optional[Callable[[], OcrWorker]] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.config = config or AppConfig()
        self.worker_factory = worker_factory or (lambda: TesseractWorker(self.config.ocr_language))
        self.rasterizer: Optional[PageRasterizer] = None

        self.results: Dict[int, OcrResult] = {}
        self.progress: Dict[ProgressKey, OcrProgress] = {}
        self._generations: Dict[ProgressKey, int] = {}

        self._worker: Optional[OcrWorker] = None
        self._worker_failed = False
        self.is_running = False
        self.is_extracting = False

        self._job: Optional[OcrJobThread] = None
        self._area_job: Optional[OcrJobThread] = None
        self._area_request: Optional[Tuple[int, RectShape]] = None
        self._job_page: Optional[int] = None
        self._batch: List[int] = []
        self._batch_total = 0

        self._ticker = QTimer(self)
        self._ticker.setInterval(self.config.ocr_tick_ms)
        self._ticker.timeout.connect(self._on_tick)
        self._tick_started = 0.0

    # ------------------------------------------------------------------
    # 文書・ワーカー
    # ------------------------------------------------------------------
    def set_rasterizer(self, rasterizer: Optional[PageRasterizer]) -> None:
        """対象文書を切り替える。前の文書の結果キャッシュは破棄する。"""
        self.rasterizer = rasterizer
        self.results.clear()

    def ensure_worker(self) -> Optional[OcrWorker]:
        """OCRワーカーを遅延生成して返す。

        初期化に失敗した場合、このセッション中は再試行せず常にNoneを返します。
        失敗は `worker_init_failed` で一度だけ通知されます。
        """
        if self._worker is not None:
            return self._worker
        if self._worker_failed:
            return None
        worker = self.worker_factory()
        try:
            worker.init()
        except OcrWorkerError as e:
            self._worker_failed = True
            logger.error("OCRワーカーの初期化に失敗しました: %s", e)
            self.worker_init_failed.emit(str(e))
            return None
        logger.info("OCRワーカーを初期化しました")
        self._worker = worker
        return worker

    # ------------------------------------------------------------------
    # 進捗
    # ------------------------------------------------------------------
    def _set_progress(self, key: ProgressKey, value: int, status: str) -> None:
        self.progress[key] = OcrProgress(progress=value, status=status)
        self._generations[key] = self._generations.get(key, 0) + 1
        self.progress_changed.emit()

    def _clear_progress(self, key: ProgressKey) -> None:
        if self.progress.pop(key, None) is not None:
            self._generations[key] = self._generations.get(key, 0) + 1
            self.progress_changed.emit()

    def _schedule_expiry(self, key: ProgressKey) -> None:
        generation = self._generations.get(key, 0)
        QTimer.singleShot(self.config.ocr_expiry_ms, lambda: self._expire(key, generation))

    def _expire(self, key: ProgressKey, generation: int) -> None:
        # 期限切れまでに新しい進捗が書き込まれていれば残す
        if self._generations.get(key) == generation:
            self._clear_progress(key)

    def _on_tick(self) -> None:
        if self._job_page is None:
            return
        elapsed_ms = (time.monotonic() - self._tick_started) * 1000
        self._set_progress(self._job_page, estimate_progress(elapsed_ms, self.config.ocr_estimated_ms),
                           "Recognizing text...")

    # ------------------------------------------------------------------
    # ページ単位のOCR
    # ------------------------------------------------------------------
    def run_ocr_on_page(self, page_number: int) -> bool:
        """ページのOCRを開始する。

        Args:
            page_number (int): 対象ページ番号。

        Returns:
            bool: ジョブを開始した場合はTrue。実行中・文書未設定・ワーカー初期化失敗の場合はFalse。
        """
        if self.is_running or not page_number or self.rasterizer is None:
            return False
        self.is_running = True
        return self._start_page_job(page_number)

    def run_ocr_on_all_pages(self) -> int:
        """全ページのOCRを1ページずつ順番に実行する。

        Returns:
            int: 対象ページ数。実行中または文書未設定の場合は0。
        """
        if self.is_running or self.rasterizer is None:
            return 0
        total = self.rasterizer.page_count
        if total <= 0:
            return 0
        self.is_running = True
        self._batch = list(range(2, total + 1))
        self._batch_total = total
        logger.info("全 %d ページのOCRを開始します", total)
        self._start_page_job(1)
        return total

    def _start_page_job(self, page_number: int) -> bool:
        self._set_progress(page_number, 0, "Initializing...")
        worker = self.ensure_worker()
        if worker is None:
            self._fail_page(page_number, "OCR worker is not available")
            return False

        self._set_progress(page_number, 15, "Rendering page...")
        try:
            raster = self.rasterizer.render_page(page_number, self.config.ocr_scale)
        except Exception as e:
            self._fail_page(page_number, f"Unable to render page for OCR. {e}")
            return False

        self._set_progress(page_number, 30, "Running OCR...")
        self._job_page = page_number
        self._tick_started = time.monotonic()
        self._ticker.start()

        job = OcrJobThread(worker, raster.image, self)
        job.result_ready.connect(self._on_page_result)
        job.error_occurred.connect(self._on_page_error)
        job.finished.connect(job.deleteLater)
        self._job = job
        logger.info("ページ %d のOCRを開始しました", page_number)
        job.start()
        return True

    def _on_page_result(self, result: OcrResult) -> None:
        page_number = self._job_page
        if page_number is None:
            return
        self._end_job()
        result = OcrResult(text=result.text.strip(), confidence=int(round(result.confidence)))
        self.results[page_number] = result
        self._set_progress(page_number, 100, "Complete")
        self._schedule_expiry(page_number)
        logger.info("ページ %d のOCRが完了しました (信頼度 %d)", page_number, result.confidence)
        self.page_finished.emit(page_number, result)
        self._next_in_batch()

    def _on_page_error(self, message: str) -> None:
        page_number = self._job_page
        if page_number is None:
            return
        self._end_job()
        self._fail_page(page_number, message)

    def _end_job(self) -> None:
        self._ticker.stop()
        self._job = None
        self._job_page = None

    def _fail_page(self, page_number: int, message: str) -> None:
        logger.error("ページ %d のOCRに失敗しました: %s", page_number, message)
        self._set_progress(page_number, 0, f"Error: {message}")
        self._schedule_expiry(page_number)
        self.page_finished.emit(page_number, None)
        if self._worker_failed:
            self._batch = []
        self._next_in_batch()

    def _next_in_batch(self) -> None:
        if self._batch:
            next_page = self._batch.pop(0)
            self._start_page_job(next_page)
            return
        was_batch = self._batch_total
        self._batch_total = 0
        self.is_running = False
        if was_batch:
            self.all_pages_finished.emit(was_batch)

    # ------------------------------------------------------------------
    # 範囲指定のOCR
    # ------------------------------------------------------------------
    def extract_text_from_area(self, page_number: int, rect: RectShape) -> bool:
        """ページ画像を正規化矩形で切り抜いてOCRする。結果は `area_extracted` で通知する。

        Args:
            page_number (int): 対象ページ番号。
            rect (RectShape): 切り抜く範囲（正規化座標）。

        Returns:
            bool: ジョブを開始した場合はTrue。
        """
        if self.is_extracting or not page_number or rect is None or self.rasterizer is None:
            return False
        key = area_progress_key(page_number)
        self._set_progress(key, 0, "Extracting text...")
        worker = self.ensure_worker()
        if worker is None:
            self._clear_progress(key)
            self.area_extracted.emit(page_number, rect, None)
            return False
        try:
            raster = self.rasterizer.render_page(page_number, self.config.ocr_scale)
            cropped = raster.image.crop(crop_box(rect, raster.width, raster.height))
        except Exception as e:
            self._fail_area(page_number, rect, f"Unable to render page for OCR. {e}")
            return False

        self.is_extracting = True
        self._area_request = (page_number, rect)
        job = OcrJobThread(worker, cropped, self)
        job.result_ready.connect(self._on_area_result)
        job.error_occurred.connect(self._on_area_error)
        job.finished.connect(job.deleteLater)
        self._area_job = job
        job.start()
        return True

    def _take_area_request(self) -> Optional[Tuple[int, RectShape]]:
        request = self._area_request
        self._area_request = None
        self._area_job = None
        self.is_extracting = False
        return request

    def _on_area_result(self, result: OcrResult) -> None:
        request = self._take_area_request()
        if request is None:
            return
        page_number, rect = request
        self._clear_progress(area_progress_key(page_number))
        text = result.text.strip()
        if not text:
            self.area_extracted.emit(page_number, rect, None)
            return
        self.area_extracted.emit(
            page_number, rect, OcrResult(text=text, confidence=int(round(result.confidence)))
        )

    def _on_area_error(self, message: str) -> None:
        request = self._take_area_request()
        if request is None:
            return
        page_number, rect = request
        self._fail_area(page_number, rect, message)

    def _fail_area(self, page_number: int, rect: RectShape, message: str) -> None:
        logger.error("範囲のテキスト抽出に失敗しました (ページ %d): %s", page_number, message)
        key = area_progress_key(page_number)
        self._set_progress(key, 0, f"Error: {message}")
        self._schedule_expiry(key)
        self.area_extracted.emit(page_number, rect, None)

    # ------------------------------------------------------------------
    # 検索・終了処理
    # ------------------------------------------------------------------
    def search(self, term: str, page_texts: Dict[int, str]) -> List[SearchResult]:
        """テキストレイヤーを大文字小文字を区別せずに検索する。

        テキストレイヤーが空のページはOCR結果で代用します。

        Args:
            term (str): 検索語。
            page_texts (Dict[int, str]): ページ番号 → テキストレイヤーの文字列。

        Returns:
            List[SearchResult]: ページ順のヒット（1ページにつき最初の1件）。
        """
        term = (term or "").strip()
        if not term:
            return []
        lower = term.lower()
        pages = sorted(set(page_texts) | set(self.results))
        hits: List[SearchResult] = []
        for page_number in pages:
            text = (page_texts.get(page_number) or "").strip()
            source = "PDF"
            if not text and page_number in self.results:
                text = self.results[page_number].text
                source = "OCR"
            if not text:
                continue
            pos = text.lower().find(lower)
            if pos < 0:
                continue
            start = max(pos - SNIPPET_RADIUS, 0)
            hits.append(SearchResult(
                id=f"{page_number}-{pos}",
                page_number=page_number,
                snippet=text[start:pos + len(term) + SNIPPET_RADIUS],
                source=source,
            ))
        return hits

    def pages_without_text(self, page_texts: Dict[int, str]) -> List[int]:
        """テキストレイヤーもOCR結果も無いページ。検索前にOCRすべき候補。"""
        return [
            page for page, text in sorted(page_texts.items())
            if not (text or "").strip() and page not in self.results
        ]

    def shutdown(self) -> None:
        """実行中のジョブを待ってワーカーを解放し、キャッシュを破棄する。"""
        self._ticker.stop()
        for job in (self._job, self._area_job):
            if job is not None:
                job.wait()
        self._job = None
        self._area_job = None
        self._job_page = None
        self._area_request = None
        self._batch_total = 0
        if self._worker is not None:
            self._worker.terminate()
            self._worker = None
        self.results.clear()
        self.progress.clear()
        self._batch = []
        self.is_running = False
        self.is_extracting = False


def estimate_progress(elapsed_ms: float, estimated_ms: int = 5000) -> int:
    """経過時間から推定進捗を計算する。認識器は実際の進捗を返さないため近似値。

    30% から始まり、推定所要時間で 90% に達した後は 90% で止まります。
    """
    if estimated_ms <= 0:
        return 90
    return int(round(min(30 + (elapsed_ms / estimated_ms) * 60, 90)))
