import pytest
from PIL import Image

from models.geometry_models import RectShape
from models.ocr_models import OcrResult
from services.ocr_service import OcrService, area_progress_key, estimate_progress
from utils.app_config import AppConfig
from utils.ocr_utils import OcrWorker, OcrWorkerError, parse_ocr_data
from utils.pdf_utils import RasterHandle


class FakeRasterizer:
    def __init__(self, page_count=3, broken_pages=()):
        self.page_count = page_count
        self.broken_pages = set(broken_pages)

    def render_page(self, page_number, scale=2.0):
        if page_number in self.broken_pages:
            raise RuntimeError("broken page")
        return RasterHandle(width=100, height=50, image=Image.new("RGB", (100, 50), "white"))


class FakeWorker(OcrWorker):
    def __init__(self, text="recognized text", confidence=88.6, fail_init=False, fail_recognize=False):
        self.text = text
        self.confidence = confidence
        self.fail_init = fail_init
        self.fail_recognize = fail_recognize
        self.sizes = []
        self.terminated = False

    def init(self):
        if self.fail_init:
            raise OcrWorkerError("engine missing")

    def recognize(self, image):
        self.sizes.append(image.size)
        if self.fail_recognize:
            raise OcrWorkerError("recognition failed")
        return OcrResult(text=f"  {self.text}  ", confidence=self.confidence)

    def terminate(self):
        self.terminated = True


@pytest.fixture
def config():
    return AppConfig(ocr_tick_ms=10, ocr_expiry_ms=50)


def _service(qapp, config, worker, rasterizer=None):
    service = OcrService(config, worker_factory=lambda: worker)
    service.set_rasterizer(rasterizer or FakeRasterizer())
    return service


def test_page_ocr_caches_result_and_expires_progress(qapp, config, wait_until):
    worker = FakeWorker()
    service = _service(qapp, config, worker)
    finished = []
    service.page_finished.connect(lambda page, result: finished.append((page, result)))

    assert service.run_ocr_on_page(2)
    assert not service.run_ocr_on_page(3)
    assert wait_until(lambda: finished)

    page, result = finished[0]
    assert page == 2
    assert result == OcrResult("recognized text", 89)
    assert service.results[2] == result
    assert service.progress[2].status == "Complete"
    assert not service.is_running
    assert wait_until(lambda: 2 not in service.progress)
    service.shutdown()


def test_page_ocr_requires_document(qapp, config):
    service = OcrService(config, worker_factory=FakeWorker)
    assert not service.run_ocr_on_page(1)
    assert service.run_ocr_on_all_pages() == 0


def test_worker_init_failure_is_reported_once(qapp, config):
    service = _service(qapp, config, FakeWorker(fail_init=True))
    failures = []
    service.worker_init_failed.connect(failures.append)

    assert not service.run_ocr_on_page(1)
    assert not service.run_ocr_on_page(1)
    assert failures == ["engine missing"]
    assert service.progress[1].is_error
    assert not service.is_running


def test_recognition_error_marks_page(qapp, config, wait_until):
    service = _service(qapp, config, FakeWorker(fail_recognize=True))
    finished = []
    service.page_finished.connect(lambda page, result: finished.append((page, result)))
    service.run_ocr_on_page(1)
    assert wait_until(lambda: finished)
    assert finished == [(1, None)]
    assert service.progress[1].status == "Error: recognition failed"
    assert 1 not in service.results
    assert wait_until(lambda: 1 not in service.progress)
    service.shutdown()


def test_repeated_failure_leaves_no_result_and_clears_progress(qapp, config, wait_until):
    service = _service(qapp, config, FakeWorker(fail_recognize=True), FakeRasterizer(page_count=6))
    finished = []
    service.page_finished.connect(lambda page, result: finished.append((page, result)))

    assert service.run_ocr_on_page(5)
    before = dict(service.results)
    assert not service.run_ocr_on_page(6)
    assert service.results == before
    assert 6 not in service.progress
    assert wait_until(lambda: len(finished) == 1)
    assert 5 not in service.results
    assert not service.is_running

    assert service.run_ocr_on_page(5)
    assert wait_until(lambda: len(finished) == 2)
    assert finished == [(5, None), (5, None)]
    assert 5 not in service.results
    assert service.progress[5].is_error
    assert wait_until(lambda: 5 not in service.progress)
    service.shutdown()


def test_all_pages_runs_sequentially_and_survives_failures(qapp, config, wait_until):
    worker = FakeWorker()
    service = _service(qapp, config, worker, FakeRasterizer(page_count=3, broken_pages={2}))
    done = []
    finished = []
    service.all_pages_finished.connect(done.append)
    service.page_finished.connect(lambda page, result: finished.append((page, result is not None)))

    assert service.run_ocr_on_all_pages() == 3
    assert wait_until(lambda: done)

    assert done == [3]
    assert finished == [(1, True), (2, False), (3, True)]
    assert sorted(service.results) == [1, 3]
    assert not service.is_running
    service.shutdown()


def test_area_extraction_crops_page(qapp, config, wait_until):
    worker = FakeWorker(text="clipped", confidence=70.2)
    service = _service(qapp, config, worker)
    extracted = []
    service.area_extracted.connect(lambda page, rect, result: extracted.append((page, rect, result)))
    rect = RectShape(0.5, 0.5, 0.5, 0.5)

    assert service.extract_text_from_area(1, rect)
    assert not service.extract_text_from_area(1, rect)
    assert wait_until(lambda: extracted)

    page, got_rect, result = extracted[0]
    assert (page, got_rect) == (1, rect)
    assert result == OcrResult("clipped", 70)
    assert worker.sizes == [(50, 25)]
    assert area_progress_key(1) not in service.progress
    assert not service.is_extracting
    service.shutdown()


def test_area_extraction_with_blank_text_yields_none(qapp, config, wait_until):
    service = _service(qapp, config, FakeWorker(text=""))
    extracted = []
    service.area_extracted.connect(lambda page, rect, result: extracted.append(result))
    service.extract_text_from_area(1, RectShape(0, 0, 1, 1))
    assert wait_until(lambda: extracted)
    assert extracted == [None]
    service.shutdown()


def test_area_render_failure_expires(qapp, config, wait_until):
    service = _service(qapp, config, FakeWorker(), FakeRasterizer(broken_pages={1}))
    extracted = []
    service.area_extracted.connect(lambda page, rect, result: extracted.append(result))
    assert not service.extract_text_from_area(1, RectShape(0, 0, 1, 1))
    assert extracted == [None]
    assert service.progress[area_progress_key(1)].is_error
    assert wait_until(lambda: area_progress_key(1) not in service.progress)


def test_search_prefers_text_layer_and_falls_back_to_ocr(qapp, config):
    service = OcrService(config, worker_factory=FakeWorker)
    service.results[2] = OcrResult("Scanned CONTRACT terms", 80)
    service.results[3] = OcrResult("contract in ocr", 80)
    texts = {1: "The contract is signed.", 2: "", 3: "no match here"}

    hits = service.search("Contract", texts)

    assert [(h.page_number, h.source) for h in hits] == [(1, "PDF"), (2, "OCR")]
    assert hits[0].id == "1-4"
    assert "contract" in hits[0].snippet
    assert service.search("   ", texts) == []


def test_pages_without_text(qapp, config):
    service = OcrService(config, worker_factory=FakeWorker)
    service.results[3] = OcrResult("ocr", 90)
    assert service.pages_without_text({1: "text", 2: "  ", 3: ""}) == [2]


def test_shutdown_releases_worker_and_cache(qapp, config, wait_until):
    worker = FakeWorker()
    service = _service(qapp, config, worker)
    service.run_ocr_on_page(1)
    assert wait_until(lambda: 1 in service.results)
    service.shutdown()
    assert worker.terminated
    assert service.results == {}
    assert service.progress == {}


def test_estimate_progress():
    assert estimate_progress(0) == 30
    assert estimate_progress(2500) == 60
    assert estimate_progress(60000) == 90
    assert estimate_progress(100, 0) == 90


def test_parse_ocr_data_joins_lines_and_averages_confidence():
    data = {
        "text": ["Hello", "world", "", "next"],
        "block_num": [1, 1, 1, 1],
        "par_num": [1, 1, 1, 1],
        "line_num": [1, 1, 1, 2],
        "conf": [90, 80, -1, 71],
    }
    result = parse_ocr_data(data)
    assert result.text == "Hello world\nnext"
    assert result.confidence == 80


def test_parse_ocr_data_empty():
    assert parse_ocr_data({"text": []}) == OcrResult("", 0)
