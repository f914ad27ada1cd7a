import base64
import io
import zipfile
from urllib.parse import quote_from_bytes

import fitz
import httpx
import pytest

from notas_danf.errors import DocumentLoadError, NetworkError, ProcessingError
from notas_danf.services.packager import (PackagedFile, SearchablePdfPackager,
                                          SidecarTextPackager, bundle, download_with_ocr,
                                          fetch_pdf_bytes, get_packager, with_suffix)
from tests.fakes import NATIVE_TEXT, FakeOcr, make_pdf


def _data_url(pdf_bytes):
    return "data:application/pdf;base64," + base64.b64encode(pdf_bytes).decode("ascii")


def _words(text):
    return " ".join(text.split())


class TestNaming:
    def test_with_suffix_replaces_pdf_extension(self):
        assert with_suffix("DANF-123.pdf", "_texto.txt") == "DANF-123_texto.txt"
        assert with_suffix("DANF-123.PDF", "_pesquisavel.pdf") == "DANF-123_pesquisavel.pdf"

    def test_with_suffix_without_extension(self):
        assert with_suffix("DANF-123", "_texto.txt") == "DANF-123_texto.txt"

    def test_get_packager(self):
        assert isinstance(get_packager("sidecar"), SidecarTextPackager)
        assert isinstance(get_packager("searchable"), SearchablePdfPackager)
        with pytest.raises(ValueError):
            get_packager("zip")


class TestFetch:
    def test_base64_data_url(self):
        pdf = make_pdf(NATIVE_TEXT)
        assert fetch_pdf_bytes(_data_url(pdf)) == pdf

    def test_percent_encoded_data_url(self):
        raw = b"%PDF-1.4 conteudo"
        assert fetch_pdf_bytes("data:application/pdf," + quote_from_bytes(raw)) == raw

    def test_malformed_data_url(self):
        with pytest.raises(NetworkError):
            fetch_pdf_bytes("data:application/pdf;base64")
        with pytest.raises(NetworkError):
            fetch_pdf_bytes("data:application/pdf;base64,@@@nao-e-base64@@@")

    def test_http_failure_raises_network_error(self, monkeypatch):
        def fail(*args, **kwargs):
            raise httpx.ConnectError("conexao recusada")

        monkeypatch.setattr(httpx, "get", fail)
        with pytest.raises(NetworkError):
            fetch_pdf_bytes("https://exemplo.com.br/danf.pdf")


class TestDownloadWithOcr:
    def test_sidecar_keeps_pdf_and_adds_text_file(self):
        pdf = make_pdf(NATIVE_TEXT)
        completed = []

        files = download_with_ocr(_data_url(pdf), "DANF-1001.pdf",
                                  on_complete=completed.append,
                                  packager=SidecarTextPackager(), ocr=FakeOcr())

        assert [f.filename for f in files] == ["DANF-1001.pdf", "DANF-1001_texto.txt"]
        assert files[0].content == pdf
        assert _words(files[1].content.decode("utf-8")) == NATIVE_TEXT
        assert completed == [files]

    def test_sidecar_text_comes_from_ocr_for_scanned_pdf(self):
        files = download_with_ocr(_data_url(make_pdf("", "")), "DANF-7.pdf",
                                  packager=SidecarTextPackager(), ocr=FakeOcr())

        assert files[1].content.decode("utf-8") == "texto OCR da pagina 1\n\ntexto OCR da pagina 2"

    def test_progress_is_forwarded(self):
        updates = []

        download_with_ocr(_data_url(make_pdf("")), "DANF.pdf", on_progress=updates.append,
                          packager=SidecarTextPackager(), ocr=FakeOcr())

        assert updates[-1].progress == 100

    def test_searchable_pdf_embeds_ocr_text(self):
        files = download_with_ocr(_data_url(make_pdf("", "")), "DANF-9.pdf",
                                  packager=SearchablePdfPackager(), ocr=FakeOcr())

        assert len(files) == 1
        assert files[0].filename == "DANF-9_pesquisavel.pdf"
        doc = fitz.open(stream=files[0].content, filetype="pdf")
        try:
            assert doc.page_count == 2
            assert "texto OCR da pagina 1" in doc[0].get_text()
            assert "texto OCR da pagina 2" in doc[1].get_text()
        finally:
            doc.close()

    def test_searchable_pdf_with_native_text_is_unchanged(self):
        pdf = make_pdf(NATIVE_TEXT)

        files = download_with_ocr(_data_url(pdf), "DANF-9.pdf",
                                  packager=SearchablePdfPackager(), ocr=FakeOcr())

        assert files == [PackagedFile("DANF-9_pesquisavel.pdf", pdf, "application/pdf")]

    def test_searchable_pdf_layer_failure(self, monkeypatch):
        def fail(*args, **kwargs):
            raise RuntimeError("fonte indisponível")

        monkeypatch.setattr(fitz.Page, "insert_text", fail)
        completed = []

        with pytest.raises(ProcessingError) as exc_info:
            download_with_ocr(_data_url(make_pdf("")), "DANF-9.pdf",
                              on_complete=completed.append,
                              packager=SearchablePdfPackager(), ocr=FakeOcr())

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert "PDF pesquisável" in exc_info.value.message
        assert completed == []

    def test_failure_skips_on_complete(self):
        completed = []

        with pytest.raises(DocumentLoadError):
            download_with_ocr(_data_url(b"corrompido"), "DANF.pdf",
                              on_complete=completed.append,
                              packager=SidecarTextPackager(), ocr=FakeOcr())

        assert completed == []


class TestBundle:
    def test_single_file_passes_through(self):
        f = PackagedFile("DANF_pesquisavel.pdf", b"%PDF", "application/pdf")
        assert bundle([f], "DANF_ocr.zip") is f

    def test_several_files_are_zipped(self):
        files = [PackagedFile("DANF.pdf", b"%PDF", "application/pdf"),
                 PackagedFile("DANF_texto.txt", "olá".encode("utf-8"), "text/plain")]

        archive = bundle(files, "DANF_ocr.zip")

        assert archive.filename == "DANF_ocr.zip"
        assert archive.media_type == "application/zip"
        with zipfile.ZipFile(io.BytesIO(archive.content)) as zf:
            assert zf.namelist() == ["DANF.pdf", "DANF_texto.txt"]
            assert zf.read("DANF_texto.txt").decode("utf-8") == "olá"
