import fitz
import pytest

from models.geometry_models import RectShape
from ui.handlers.pdf_handler import PDFHandler
from utils.app_config import AppConfig
from utils.pdf_utils import PageRasterizer, PDFUtils


class RecordingOcrService:
    """自動OCRの呼び出しを記録するだけのOCRサービス。"""
    def __init__(self):
        self.results = {}
        self.is_running = False
        self.requested = []
        self.rasterizer = None

    def set_rasterizer(self, rasterizer):
        self.rasterizer = rasterizer

    def run_ocr_on_page(self, page_number):
        self.requested.append(page_number)
        return True


def _document(pages=3, text="Hello world"):
    doc = fitz.open()
    for n in range(pages):
        page = doc.new_page(width=600, height=800)
        page.insert_text((72, 72), f"{text} {n + 1}", fontsize=12)
    return doc


@pytest.fixture
def handler(qapp):
    return PDFHandler(RecordingOcrService(), AppConfig())


def test_set_document_opens_first_page(handler):
    opened, pages = [], []
    handler.document_opened.connect(opened.append)
    handler.page_changed.connect(pages.append)
    handler.set_document(_document(), "/tmp/sample.pdf")

    assert opened == [3]
    assert pages == [1]
    assert handler.is_open
    assert handler.document_name == "sample.pdf"
    assert handler.ocr_service.rasterizer is handler.rasterizer


def test_navigation_stays_in_range(handler):
    handler.set_document(_document())
    assert not handler.show_prev_page()
    assert handler.show_next_page()
    assert handler.current_page == 2
    assert not handler.show_page(4)
    assert handler.goto_page_from_input(" 3 ")
    assert not handler.goto_page_from_input("abc")
    assert handler.current_page == 3


def test_auto_ocr_skips_cached_and_running(handler):
    service = handler.ocr_service
    service.results[2] = object()
    handler.set_document(_document())
    handler.show_page(2)
    service.is_running = True
    handler.show_page(3)
    assert service.requested == [1]


def test_auto_ocr_can_be_disabled(qapp):
    service = RecordingOcrService()
    handler = PDFHandler(service, AppConfig(auto_ocr=False))
    handler.set_document(_document())
    assert service.requested == []


def test_zoom_is_stepped_and_clamped(handler):
    changes = []
    handler.zoom_changed.connect(changes.append)
    assert handler.zoom_in() == 1.05
    assert handler.set_zoom(1.23) == 1.25
    assert handler.set_zoom(10) == 3.0
    assert handler.set_zoom(0.1) == 0.5
    assert handler.reset_zoom() == 1.0
    assert handler.reset_zoom() == 1.0
    assert changes == [1.05, 1.25, 3.0, 0.5, 1.0]


def test_open_invalid_file_returns_false(handler, tmp_path):
    missing = tmp_path / "missing.pdf"
    assert not handler.open_pdf_file(str(missing))
    assert not handler.is_open


def test_close_document_resets_state(handler):
    closed = []
    handler.document_closed.connect(lambda: closed.append(True))
    handler.set_document(_document())
    handler.close_document()
    assert closed == [True]
    assert handler.current_page == 0
    assert handler.ocr_service.rasterizer is None
    assert handler.render_current_page() is None


def test_render_current_page_applies_zoom(handler):
    handler.set_document(_document(pages=1))
    handler.set_zoom(0.5)
    image = handler.render_current_page(base_scale=1.0)
    assert (image.width(), image.height()) == (300, 400)


def test_page_texts_and_size(handler):
    handler.set_document(_document(pages=2))
    texts = handler.page_texts()
    assert "Hello world 2" in texts[2]
    size = handler.page_size(2)
    assert (size.width, size.height) == (600, 800)
    assert handler.page_size(5) is None


def test_rasterizer_renders_full_page_and_area():
    rasterizer = PageRasterizer(_document(pages=1))
    full = rasterizer.render_page(1, scale=0.5)
    assert (full.width, full.height) == (300, 400)
    assert full.image.size == (300, 400)
    area = rasterizer.render_area(1, RectShape(0.0, 0.0, 0.5, 0.25), scale=1.0)
    assert area.width == pytest.approx(300, abs=1)
    assert area.height == pytest.approx(200, abs=1)
    with pytest.raises(IndexError):
        rasterizer.render_page(2)


def test_words_in_rect_returns_normalized_word_boxes():
    rasterizer = PageRasterizer(_document(pages=1))
    words = rasterizer.words_in_rect(1, RectShape(0.0, 0.0, 0.5, 0.2))
    assert [w for _, w in words] == ["Hello", "world", "1"]
    first = words[0][0]
    assert 0.1 < first.x < 0.13
    assert 0 < first.y < 0.1
    assert rasterizer.text_in_rect(1, RectShape(0.0, 0.0, 0.5, 0.2)) == "Hello world 1"
    assert rasterizer.text_in_rect(1, RectShape(0.0, 0.8, 0.5, 0.1)) is None


def test_render_page_to_qimage():
    page = _document(pages=1).load_page(0)
    image = PDFUtils.render_page(page, scale=1.0)
    assert (image.width(), image.height()) == (600, 800)
