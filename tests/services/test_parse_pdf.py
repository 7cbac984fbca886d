from __future__ import annotations

from sds_api.services.parse_pdf import extract_full_text


def test_non_pdf_files_are_skipped() -> None:
    assert extract_full_text(b"Id,Name", "sheet.csv") is None


def test_empty_content_is_skipped() -> None:
    assert extract_full_text(b"", "empty.pdf") is None


def test_unparseable_pdf_yields_none() -> None:
    assert extract_full_text(b"definitely not a pdf", "broken.PDF") is None
