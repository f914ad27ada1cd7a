from functools import lru_cache
from notas_danf.services.danf_service import DanfRetrievalService, MeuDanfeService
from notas_danf.services.extraction_service import ClaudeExtractionService, TextExtractionService
from notas_danf.services.ocr_service import OcrService, TesseractOcrService
from notas_danf.services.packager import Packager, get_packager
from notas_danf.services.storage_service import PhotoStorage


# singletons shared by every request; tests override them with fakes
@lru_cache()
def get_extraction_service() -> TextExtractionService:
    return ClaudeExtractionService()


@lru_cache()
def get_danf_service() -> DanfRetrievalService:
    return MeuDanfeService()


@lru_cache()
def get_ocr_service() -> OcrService:
    return TesseractOcrService()


@lru_cache()
def get_deployment_packager() -> Packager:
    return get_packager()


@lru_cache()
def get_photo_storage() -> PhotoStorage:
    return PhotoStorage()
