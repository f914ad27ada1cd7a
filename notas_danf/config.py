import os
from dotenv import load_dotenv

load_dotenv()

# Render usa "postgres://", SQLAlchemy precisa de "postgresql://"
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./notas_danf.db").replace(
    "postgres://", "postgresql://", 1)
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 480))
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")

# OCR
TESSERACT_CMD = os.getenv("TESSERACT_CMD", "tesseract")
TESSDATA_PREFIX = os.getenv("TESSDATA_PREFIX", "")
OCR_LANG = os.getenv("OCR_LANG", "por")
OCR_RENDER_SCALE = float(os.getenv("OCR_RENDER_SCALE", 2.0))
NATIVE_TEXT_MIN_CHARS = 50  # acima disso o PDF tem camada de texto real

# DANF (Meu Danfe)
DANF_API_URL = os.getenv("DANF_API_URL", "https://api.meudanfe.com.br")
MEUDANFE_API_KEY = os.getenv("MEUDANFE_API_KEY", "")
DANF_TIMEOUT = float(os.getenv("DANF_TIMEOUT", 30))
DANF_RETRY_DELAY = float(os.getenv("DANF_RETRY_DELAY", 2.0))
DANF_PACKAGER = os.getenv("DANF_PACKAGER", "sidecar")  # sidecar | searchable

# IA de visão para fotos de notas
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
VISION_MODEL = os.getenv("VISION_MODEL", "claude-sonnet-4-5")
VISION_TIMEOUT = float(os.getenv("VISION_TIMEOUT", 60))

# Códigos de login para o celular
LOGIN_CODE_EXPIRE_MINUTES = int(os.getenv("LOGIN_CODE_EXPIRE_MINUTES", 5))

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./uploads")
