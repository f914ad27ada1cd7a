"""
PDF text acquisition using PyMuPDF (fitz), with OCR fallback.

Two strategies:
  1. Native pass: join the text runs embedded in each page. Fast and lossless.
  2. OCR pass (scanned PDFs only): render each page at 2x and recognize it
     with the OCR engine, one page at a time.

Progress is reported through a single callback receiving OcrProgress values.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional
import fitz  # PyMuPDF
from PIL import Image
from notas_danf.config import OCR_LANG, OCR_RENDER_SCALE, NATIVE_TEXT_MIN_CHARS
from notas_danf.errors import DocumentLoadError, ProcessingError, RenderError
from notas_danf.services.ocr_service import OcrService, TesseractOcrService

logger = logging.getLogger(__name__)

_PAGE_SEPARATOR = "\n\n"

# OCR pass spans 20 → 90 of the bar, split evenly between pages
_OCR_START = 20
_OCR_SPAN = 70


@dataclass
class OcrProgress:
    status: str
    progress: int


ProgressCallback = Callable[[OcrProgress], None]


@dataclass
class TextExtraction:
    pages: List[str] = field(default_factory=list)
    used_ocr: bool = False

    @property
    def text(self) -> str:
        return _PAGE_SEPARATOR.join(self.pages).strip()


class _ProgressReporter:
    """Forwards progress to the caller, never letting the value go backwards."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self.callback = callback
        self.last = 0

    def __call__(self, status: str, progress: float):
        value = min(100, max(self.last, _round_half_up(progress)))
        self.last = value
        if self.callback:
            self.callback(OcrProgress(status=status, progress=value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def ocr_progress(page_num: int, total_pages: int, page_progress: float) -> int:
    """Overall progress while OCR-ing page `page_num` (1-based) at `page_progress`%."""
    base = _OCR_START + (page_num - 1) / total_pages * _OCR_SPAN
    return _round_half_up(base + (page_progress / 100) * _OCR_SPAN / total_pages)


def load_document(pdf_bytes: bytes) -> fitz.Document:
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        raise DocumentLoadError(f"Arquivo não é um PDF válido: {e}") from e
    if doc.page_count == 0:
        doc.close()
        raise DocumentLoadError("PDF sem páginas")
    return doc


def extract_page_runs(page: fitz.Page) -> str:
    """Join the embedded text runs (spans) of one page with single spaces."""
    runs = []
    for block in page.get_text("dict")["blocks"]:
        if block.get("type") != 0:  # image block
            continue
        for line in block["lines"]:
            for span in line["spans"]:
                if span["text"]:
                    runs.append(span["text"])
    return " ".join(runs)


def extract_native_pages(doc: fitz.Document) -> List[str]:
    return [extract_page_runs(page) for page in doc]


def render_page(page: fitz.Page, scale: float = OCR_RENDER_SCALE) -> Image.Image:
    try:
        pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        image = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
    except Exception as e:
        raise RenderError(f"Falha ao renderizar página {page.number + 1}: {e}") from e
    logger.info(f"PDF page {page.number + 1} rendered: {pix.width}x{pix.height}px")
    return image


def _ocr_pages(doc: fitz.Document, lang: str, ocr: OcrService,
               report: _ProgressReporter) -> List[str]:
    total_pages = doc.page_count
    pages_text = []
    for page_num in range(1, total_pages + 1):
        status = f"OCR página {page_num}/{total_pages}..."
        report(status, ocr_progress(page_num, total_pages, 0))

        image = render_page(doc.load_page(page_num - 1))
        text = ocr.recognize(
            image, lang,
            lambda p, n=page_num, s=status: report(s, ocr_progress(n, total_pages, p)),
        )
        del image  # only one rendered bitmap alive at a time
        pages_text.append(text)
        logger.info(f"Page {page_num}/{total_pages} OCR: {len(text)} chars")
    return pages_text


def extract_pages(pdf_bytes: bytes, lang: str = OCR_LANG,
                  on_progress: Optional[ProgressCallback] = None,
                  ocr: Optional[OcrService] = None) -> TextExtraction:
    """
    Return the per-page text of a PDF, preferring the embedded text layer.

    OCR only runs when the trimmed native text has at most
    NATIVE_TEXT_MIN_CHARS characters. Any failure aborts the whole run with a
    ProcessingError; no partial text is returned.
    """
    report = _ProgressReporter(on_progress)
    report("Carregando PDF...", 0)
    doc = load_document(pdf_bytes)
    try:
        report("Extraindo texto nativo...", 10)
        native = TextExtraction(pages=extract_native_pages(doc))
        if len(native.text) > NATIVE_TEXT_MIN_CHARS:
            logger.info(f"PDF native text: {len(native.text)} chars from {doc.page_count} page(s)")
            report("Texto nativo encontrado!", 100)
            return native

        logger.info("PDF has no usable text layer, running OCR on rendered pages")
        report("Iniciando OCR...", _OCR_START)
        pages = _ocr_pages(doc, lang, ocr or TesseractOcrService(), report)
        report("OCR concluído!", 100)
        return TextExtraction(pages=pages, used_ocr=True)
    except ProcessingError:
        raise
    except Exception as e:
        logger.error(f"PDF processing error: {e}")
        raise ProcessingError(f"Erro ao processar PDF: {e}") from e
    finally:
        doc.close()


def extract_text(pdf_bytes: bytes, lang: str = OCR_LANG,
                 on_progress: Optional[ProgressCallback] = None,
                 ocr: Optional[OcrService] = None) -> str:
    return extract_pages(pdf_bytes, lang, on_progress, ocr).text
