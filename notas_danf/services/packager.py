"""
Packaging of a DANF PDF together with its extracted text.

Two strategies, one chosen per deployment (DANF_PACKAGER):
  sidecar    → original PDF unchanged + "<nome>_texto.txt"
  searchable → single "<nome>_pesquisavel.pdf" with an invisible text layer
"""

import base64
import io
import logging
import zipfile
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol
from urllib.parse import unquote_to_bytes
import fitz  # PyMuPDF
import httpx
from notas_danf.config import DANF_PACKAGER, DANF_TIMEOUT, OCR_LANG
from notas_danf.errors import NetworkError, ProcessingError
from notas_danf.services.ocr_service import OcrService
from notas_danf.services.pdf_service import ProgressCallback, TextExtraction, extract_pages

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"

# Invisible text layer: render mode 3 draws neither fill nor stroke
_INVISIBLE = 3
_LAYER_FONT_SIZE = 1


@dataclass
class PackagedFile:
    filename: str
    content: bytes
    media_type: str


def with_suffix(file_name: str, suffix: str) -> str:
    """'DANF-123.pdf' + '_texto.txt' → 'DANF-123_texto.txt'"""
    stem = file_name[:-4] if file_name.lower().endswith(".pdf") else file_name
    return stem + suffix


class Packager(Protocol):
    def package(self, pdf_bytes: bytes, file_name: str,
                extraction: TextExtraction) -> List[PackagedFile]:
        ...


class SidecarTextPackager:
    def package(self, pdf_bytes: bytes, file_name: str,
                extraction: TextExtraction) -> List[PackagedFile]:
        return [
            PackagedFile(file_name, pdf_bytes, PDF_MEDIA_TYPE),
            PackagedFile(with_suffix(file_name, "_texto.txt"),
                         extraction.text.encode("utf-8"), TEXT_MEDIA_TYPE),
        ]


class SearchablePdfPackager:
    """Writes each page's OCR text back into the PDF as an invisible layer."""

    def package(self, pdf_bytes: bytes, file_name: str,
                extraction: TextExtraction) -> List[PackagedFile]:
        out_name = with_suffix(file_name, "_pesquisavel.pdf")
        if not extraction.used_ocr:
            # Native text layer already present
            return [PackagedFile(out_name, pdf_bytes, PDF_MEDIA_TYPE)]

        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        try:
            for page, text in zip(doc, extraction.pages):
                if not text.strip():
                    continue
                page.insert_text(
                    fitz.Point(0, _LAYER_FONT_SIZE),
                    text,
                    fontsize=_LAYER_FONT_SIZE,
                    fontname="helv",
                    render_mode=_INVISIBLE,
                    overlay=True,
                )
            content = doc.tobytes(garbage=3, deflate=True)
        except Exception as e:
            raise ProcessingError(f"Erro ao gerar PDF pesquisável: {e}") from e
        finally:
            doc.close()
        logger.info(f"Searchable PDF built: {out_name} ({len(content)} bytes)")
        return [PackagedFile(out_name, content, PDF_MEDIA_TYPE)]


_PACKAGERS = {
    "sidecar": SidecarTextPackager,
    "searchable": SearchablePdfPackager,
}


def get_packager(name: str = DANF_PACKAGER) -> Packager:
    try:
        return _PACKAGERS[name]()
    except KeyError:
        raise ValueError(f"DANF_PACKAGER inválido: {name!r}. Use 'sidecar' ou 'searchable'") from None


def fetch_pdf_bytes(source_url: str) -> bytes:
    """Read a PDF from a data URL or an http(s) URL."""
    if source_url.startswith("data:"):
        header, sep, payload = source_url.partition(",")
        if not sep:
            raise NetworkError("URL de dados inválida")
        try:
            if header.endswith(";base64"):
                return base64.b64decode(payload, validate=True)
            return unquote_to_bytes(payload)
        except ValueError as e:
            raise NetworkError(f"URL de dados inválida: {e}") from e

    try:
        resp = httpx.get(source_url, timeout=DANF_TIMEOUT, follow_redirects=True)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"PDF fetch error: {e}")
        raise NetworkError(f"Não foi possível baixar o PDF: {e}") from e
    return resp.content


def download_with_ocr(pdf_source_url: str, file_name: str,
                      on_progress: Optional[ProgressCallback] = None,
                      on_complete: Optional[Callable[[List[PackagedFile]], None]] = None,
                      packager: Optional[Packager] = None,
                      ocr: Optional[OcrService] = None,
                      lang: str = OCR_LANG) -> List[PackagedFile]:
    """
    Fetch a PDF, extract its text and package both for download.

    Failures propagate; on_complete is only called with a full result.
    """
    pdf_bytes = fetch_pdf_bytes(pdf_source_url)
    extraction = extract_pages(pdf_bytes, lang, on_progress, ocr)
    files = (packager or get_packager()).package(pdf_bytes, file_name, extraction)
    if on_complete:
        on_complete(files)
    return files


def bundle(files: List[PackagedFile], archive_name: str) -> PackagedFile:
    """Single file passes through; several files are zipped together."""
    if len(files) == 1:
        return files[0]
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for f in files:
            zf.writestr(f.filename, f.content)
    return PackagedFile(archive_name, buf.getvalue(), "application/zip")
