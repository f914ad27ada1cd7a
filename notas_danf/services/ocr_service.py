import logging
import os
from typing import Callable, Optional, Protocol
import pytesseract
import cv2
import numpy as np
from PIL import Image
from notas_danf.config import TESSERACT_CMD, TESSDATA_PREFIX
from notas_danf.errors import OcrError

logger = logging.getLogger(__name__)

pytesseract.pytesseract.tesseract_cmd = TESSERACT_CMD

if TESSDATA_PREFIX:
    os.environ['TESSDATA_PREFIX'] = TESSDATA_PREFIX

# PSM 6 → uniform block of text (good for DANF pages rendered from PDF)
_TESS_CONFIG_BLOCK = '--psm 6 --oem 3'

# Receives the engine's own progress for the current image, 0–100
PageProgressCallback = Callable[[float], None]


class OcrService(Protocol):
    def recognize(self, image: Image.Image, lang: str,
                  on_progress: Optional[PageProgressCallback] = None) -> str:
        ...


def preprocess_page(image: Image.Image) -> np.ndarray:
    """
    Prepare a rendered PDF page for Tesseract.

    Rendered pages have a clean white background, so a mild sharpen on the
    grayscale image is enough. Small renders are upscaled to 1200px wide.
    """
    gray = cv2.cvtColor(np.asarray(image.convert('RGB')), cv2.COLOR_RGB2GRAY)
    kernel = np.array([[0, -1, 0], [-1, 5, -1], [0, -1, 0]])
    sharpened = cv2.filter2D(gray, -1, kernel)
    h, w = sharpened.shape
    if w < 1200:
        scale = 1200 / w
        sharpened = cv2.resize(sharpened, None, fx=scale, fy=scale,
                               interpolation=cv2.INTER_CUBIC)
    return sharpened


def _run_ocr(pil_img: Image.Image, lang: str, config: str) -> tuple[str, float]:
    """Run Tesseract once, returning (text, avg_confidence) from a single call."""
    data = pytesseract.image_to_data(
        pil_img, lang=lang, config=config,
        output_type=pytesseract.Output.DICT,
    )
    confidences = [float(c) for c in data['conf'] if float(c) > 0]
    avg_conf = sum(confidences) / len(confidences) if confidences else 0

    # Reconstruct text with line breaks from block/line metadata
    lines: dict = {}
    for word, conf, block, par, line in zip(
        data['text'], data['conf'],
        data['block_num'], data['par_num'], data['line_num'],
    ):
        if str(word).strip() and float(conf) > 0:
            lines.setdefault((block, par, line), []).append(word)
    text = '\n'.join(' '.join(words) for words in lines.values())

    return text, round(avg_conf, 1)


class TesseractOcrService:
    """
    OCR engine backed by the local Tesseract binary.

    Tesseract gives no intermediate progress, so the page is reported at 0
    when recognition starts and at 100 when it returns.
    """

    def __init__(self, config: str = _TESS_CONFIG_BLOCK):
        self.config = config

    def recognize(self, image: Image.Image, lang: str,
                  on_progress: Optional[PageProgressCallback] = None) -> str:
        if on_progress:
            on_progress(0)
        try:
            processed = Image.fromarray(preprocess_page(image))
            text, confidence = _run_ocr(processed, lang, self.config)
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, cv2.error) as e:
            raise OcrError(f'Falha no reconhecimento de texto: {e}') from e
        logger.info(f'OCR lang={lang} confidence={confidence:.1f}% chars={len(text)}')
        if on_progress:
            on_progress(100)
        return text
