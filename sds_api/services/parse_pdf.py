from __future__ import annotations

import io
import logging
from typing import Optional

import pdfplumber

logger = logging.getLogger(__name__)

# cap on text stored and indexed per document
MAX_TEXT_CHARS = 200_000


def extract_full_text(content: bytes, filename: str) -> Optional[str]:
    """Best-effort text extraction for PDF uploads; other formats yield None."""
    if not filename.lower().endswith(".pdf") or not content:
        return None

    try:
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception:  # pdfplumber raises a wide range of parser errors
        logger.warning("pdf_text_extraction_failed filename=%s", filename, exc_info=True)
        return None

    text = "\n".join(pages).strip()
    return text[:MAX_TEXT_CHARS] if text else None
