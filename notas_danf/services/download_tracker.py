import threading
from typing import Dict, Optional
from notas_danf.services.pdf_service import OcrProgress

# Reported while the DANF itself is still being fetched
FETCHING_STATUS = "Baixando DANF..."


class DownloadTracker:
    """
    Busy flags and last progress of the OCR downloads in flight, per receipt.

    A receipt can only have one OCR download running at a time.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._running: Dict[int, OcrProgress] = {}

    def start(self, nota_id: int) -> bool:
        with self._lock:
            if nota_id in self._running:
                return False
            self._running[nota_id] = OcrProgress(status=FETCHING_STATUS, progress=0)
            return True

    def update(self, nota_id: int, progress: OcrProgress):
        with self._lock:
            if nota_id in self._running:
                self._running[nota_id] = progress

    def progress(self, nota_id: int) -> Optional[OcrProgress]:
        with self._lock:
            return self._running.get(nota_id)

    def is_running(self, nota_id: int) -> bool:
        with self._lock:
            return nota_id in self._running

    def finish(self, nota_id: int):
        with self._lock:
            self._running.pop(nota_id, None)


tracker = DownloadTracker()
