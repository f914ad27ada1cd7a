"""
Domain errors.

Every error carries a human-readable (Portuguese) message shown to the user,
the HTTP status the API answers with, and a short machine code.
"""
from typing import Optional


class NotaFiscalError(Exception):
    status_code = 400
    code = "erro"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ProcessingError(NotaFiscalError):
    """PDF text extraction failed. The original exception is kept in __cause__."""
    status_code = 422
    code = "processing_error"


class DocumentLoadError(ProcessingError):
    code = "document_load_error"


class RenderError(ProcessingError):
    code = "render_error"


class OcrError(ProcessingError):
    code = "ocr_error"


class ValidationError(NotaFiscalError):
    status_code = 422
    code = "validation_error"


class NetworkError(NotaFiscalError):
    status_code = 502
    code = "network_error"


class AuthError(NotaFiscalError):
    status_code = 401
    code = "invalid_session"
