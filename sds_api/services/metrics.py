from __future__ import annotations

from prometheus_client import Counter


LOGINS_COUNTER = Counter(
    "sds_logins_total",
    "Login attempts by method and outcome",
    ["method", "outcome"],
)

DOCUMENTS_UPLOADED_COUNTER = Counter(
    "sds_documents_uploaded_total",
    "Documents uploaded per company",
    ["company_code"],
)

UPLOAD_FAILURES_COUNTER = Counter(
    "sds_document_upload_failures_total",
    "Bulk upload files that failed per company",
    ["company_code"],
)

METADATA_IMPORT_ROWS_COUNTER = Counter(
    "sds_metadata_import_rows_total",
    "Spreadsheet rows applied by metadata import",
)


def record_login(method: str, outcome: str) -> None:
    LOGINS_COUNTER.labels(method=method, outcome=outcome).inc()


def record_upload(company_code: str | None) -> None:
    DOCUMENTS_UPLOADED_COUNTER.labels(company_code=company_code or "unknown").inc()


def record_upload_failure(company_code: str | None) -> None:
    UPLOAD_FAILURES_COUNTER.labels(company_code=company_code or "unknown").inc()


def record_import_rows(count: int) -> None:
    if count:
        METADATA_IMPORT_ROWS_COUNTER.inc(count)
