"""Application configuration. Loads from environment and .env file."""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
# Load .env from cwd, then backend/.env, then project root .env
load_dotenv()
load_dotenv(BASE_DIR / ".env")
load_dotenv(BASE_DIR.parent / ".env")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Output types
CANDIDATE_EXPORT_MIMES = ["image/png", "image/jpeg", "image/webp", "image/avif"]
# Encodings that take a quality argument
QUALITY_MIMES = {"image/jpeg", "image/webp", "image/avif"}
# Encodings that cannot represent transparency; the canvas gets the background fill
OPAQUE_MIMES = {"image/jpeg"}

# Conversion defaults (env overrides)
DEFAULT_TYPE = os.getenv("DEFAULT_TYPE", "image/webp")
DEFAULT_QUALITY = float(os.getenv("DEFAULT_QUALITY", "0.92"))
DEFAULT_BACKGROUND = os.getenv("DEFAULT_BACKGROUND", "#ffffff")

# Decoding / drawing
FAST_BITMAP = _env_bool("FAST_BITMAP", True)
MAX_OUTPUT_PIXELS = int(os.getenv("MAX_OUTPUT_PIXELS", str(16384 * 16384)))

# Concurrency: workers = clamp(hint - 1, 1, MAX_CONCURRENCY)
MAX_CONCURRENCY = int(os.getenv("MAX_CONCURRENCY", "6"))
CONCURRENCY_HINT = int(os.getenv("CONCURRENCY_HINT", str(os.cpu_count() or 4)))

# Limits (env)
MAX_IMAGES_PER_UPLOAD = int(os.getenv("MAX_IMAGES_PER_UPLOAD", "50"))
MAX_IMAGE_SIZE_MB = int(os.getenv("MAX_IMAGE_SIZE_MB", "20"))
MAX_IMAGE_SIZE_BYTES = MAX_IMAGE_SIZE_MB * 1024 * 1024

# Server (for uvicorn)
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
# CORS: comma-separated origins, e.g. "http://localhost:5173,http://127.0.0.1:5173"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",") if o.strip()]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("converter")
