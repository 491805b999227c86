"""
Runtime configuration.
All settings come from environment variables (optionally via a .env file).
"""

import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Upload size limit in bytes (default 25 MB)
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(25 * 1024 * 1024)))

# TrueType fonts used for PDF output. When unset the renderer searches for
# DejaVu Sans and finally falls back to reportlab's bundled Vera. Vera covers
# Latin-1 only and DejaVu Sans has no CJK glyphs; point these at a font such
# as Noto Sans CJK when PDFs must render every script.
PDF_FONT_PATH: Optional[str] = os.getenv("PDF_FONT_PATH") or None
PDF_BOLD_FONT_PATH: Optional[str] = os.getenv("PDF_BOLD_FONT_PATH") or None


def get_cors_origins() -> List[str]:
    """
    Return the allowed CORS origins.

    Read from the CORS_ORIGINS environment variable as a comma-separated list,
    e.g.:
        CORS_ORIGINS=https://convert.example.com,http://localhost:3000

    Defaults to ["*"] (any origin). Duplicates are removed while preserving
    order.
    """
    cors_env = os.getenv("CORS_ORIGINS", "*").strip()
    origins: List[str] = []
    for origin in cors_env.split(","):
        origin = origin.strip()
        if origin and origin not in origins:
            origins.append(origin)
    return origins or ["*"]
