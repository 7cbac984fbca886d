from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from ..errors import NotFound, ValidationError
from ..models import Document
from .metrics import record_import_rows, record_upload, record_upload_failure
from .parse_pdf import extract_full_text
from .search import SearchService
from .spreadsheet import SpreadsheetError, build_workbook, join_tags, read_metadata_rows, tag_problem
from .storage import StorageService

logger = logging.getLogger(__name__)

# API field name -> model attribute; the only metadata clients may edit
EDITABLE_FIELDS = {
    "productName": "product_name",
    "department": "department",
    "site": "site",
    "tags": "tags",
}

MAX_SHARE_DAYS = 365


@dataclass
class IncomingFile:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


def parse_document_id(raw: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


def serialize_document(document: Document) -> dict[str, Any]:
    return {
        "id": str(document.id),
        "companyCode": document.company_code,
        "filename": document.filename,
        "blobPath": document.blob_path,
        "productName": document.product_name,
        "department": document.department,
        "site": document.site,
        "tags": document.tags,
        "createdAt": document.created_at.isoformat() if document.created_at else None,
        "updatedAt": document.updated_at.isoformat() if document.updated_at else None,
    }


def check_tags(tags: Any) -> list[str]:
    if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
        raise ValidationError("tags must be a list of strings")
    for tag in tags:
        problem = tag_problem(tag)
        if problem:
            raise ValidationError(problem)
    return tags


def _clean_metadata(fields: Mapping[str, Any]) -> dict[str, Any]:
    update: dict[str, Any] = {}
    for key, attribute in EDITABLE_FIELDS.items():
        if key not in fields:
            continue
        value = fields[key]
        if key == "tags":
            value = check_tags(value or [])
        elif value is not None and not isinstance(value, str):
            raise ValidationError(f"{key} must be a string")
        update[attribute] = value
    return update


class DocumentService:
    def __init__(self, db: Session, storage: StorageService, search: SearchService) -> None:
        self.db = db
        self.storage = storage
        self.search_index = search

    # --- Queries ---------------------------------------------------------
    def search(
        self,
        query: Optional[str] = None,
        company_code: Optional[str] = None,
        department: Optional[str] = None,
        site: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        if self.search_index.is_configured():
            return self.search_index.search(query, company_code, department, site, page, limit)

        # without a search index only the equality filters apply
        base_query = self.db.query(Document)
        if company_code:
            base_query = base_query.filter(Document.company_code == company_code)
        if department:
            base_query = base_query.filter(Document.department == department)
        if site:
            base_query = base_query.filter(Document.site == site)

        total = base_query.count()
        rows = (
            base_query.order_by(Document.created_at.desc(), Document.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "items": [serialize_document(document) for document in rows],
            "total": total,
            "page": page,
            "limit": limit,
        }

    def get(self, document_id: uuid.UUID) -> Optional[Document]:
        return self.db.query(Document).filter(Document.id == document_id).one_or_none()

    def require(self, document_id: uuid.UUID) -> Document:
        document = self.get(document_id)
        if document is None:
            raise NotFound("Document not found")
        return document

    def _find_many(self, ids: Optional[Iterable[str]]) -> list[Document]:
        query = self.db.query(Document)
        if ids:
            parsed = [doc_id for doc_id in (parse_document_id(raw) for raw in ids) if doc_id is not None]
            query = query.filter(Document.id.in_(parsed))
        return query.order_by(Document.created_at.asc(), Document.id.asc()).all()

    # --- Uploads ---------------------------------------------------------
    def upload(
        self,
        file: IncomingFile,
        company_code: str,
        product_name: Optional[str] = None,
        department: Optional[str] = None,
        site: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> Document:
        if not file.filename:
            raise ValidationError("Filename required")
        tags = check_tags(list(tags or []))

        stored = self.storage.upload_fileobj(company_code, file.content, file.filename, file.content_type)
        document = Document(
            company_code=company_code,
            filename=file.filename,
            blob_path=stored.blob_path,
            product_name=product_name,
            department=department,
            site=site,
            full_text=extract_full_text(file.content, file.filename),
        )
        document.tags = tags
        self.db.add(document)
        self.db.commit()
        self.db.refresh(document)

        self.search_index.index_document(document)
        record_upload(company_code)
        logger.info(
            "document_uploaded document_id=%s company_code=%s stored=%s",
            document.id,
            company_code,
            stored.stored,
        )
        return document

    def bulk_upload(self, files: Sequence[IncomingFile], company_code: str) -> dict[str, Any]:
        results: dict[str, Any] = {"uploaded": 0, "failed": 0, "errors": []}
        for file in files:
            try:
                self.upload(file, company_code)
            except Exception as exc:  # each file fails on its own
                self.db.rollback()
                results["failed"] += 1
                results["errors"].append(f"{file.filename}: {exc}")
                record_upload_failure(company_code)
                logger.warning("bulk_upload_file_failed filename=%s error=%s", file.filename, exc)
            else:
                results["uploaded"] += 1
        return results

    # --- Metadata --------------------------------------------------------
    def update_metadata(self, document_id: uuid.UUID, fields: Mapping[str, Any]) -> Document:
        update = _clean_metadata(fields)
        document = self.require(document_id)
        for attribute, value in update.items():
            setattr(document, attribute, value)
        self.db.commit()
        self.db.refresh(document)

        self.search_index.index_document(document)
        return document

    def bulk_update_metadata(self, ids: Sequence[str], fields: Mapping[str, Any]) -> dict[str, int]:
        update = _clean_metadata(fields)
        if not ids:
            return {"count": 0}

        documents = self._find_many(ids)
        for document in documents:
            for attribute, value in update.items():
                setattr(document, attribute, value)
        self.db.commit()

        for document in documents:
            self.search_index.index_document(document)
        logger.info("documents_bulk_updated count=%s fields=%s", len(documents), ",".join(sorted(update)))
        return {"count": len(documents)}

    # --- Spreadsheet round trip -----------------------------------------
    def export_to_excel(self, ids: Optional[Sequence[str]] = None) -> bytes:
        documents = self._find_many(ids)
        return build_workbook(
            (
                str(document.id),
                document.company_code,
                document.filename,
                document.product_name,
                document.department,
                document.site,
                join_tags(document.tags),
            )
            for document in documents
        )

    def import_from_excel(self, content: bytes) -> dict[str, int]:
        try:
            rows = read_metadata_rows(content)
        except SpreadsheetError as exc:
            raise ValidationError(str(exc)) from exc

        touched: list[Document] = []
        for row in rows:
            document_id = parse_document_id(row.id)
            document = self.get(document_id) if document_id else None
            if document is None:
                logger.info("metadata_import_row_skipped id=%s", row.id)
                continue

            # blank cells leave the stored value alone; tags are always replaced
            if row.company_code:
                document.company_code = row.company_code
            if row.filename:
                document.filename = row.filename
            if row.product_name is not None:
                document.product_name = row.product_name
            if row.department is not None:
                document.department = row.department
            if row.site is not None:
                document.site = row.site
            document.tags = row.tags
            touched.append(document)

        self.db.commit()
        for document in touched:
            self.search_index.index_document(document)

        record_import_rows(len(touched))
        logger.info("metadata_import_completed rows=%s updated=%s", len(rows), len(touched))
        return {"updated": len(touched)}

    # --- Access ----------------------------------------------------------
    def get_download_url(self, document_id: uuid.UUID) -> dict[str, str]:
        document = self.require(document_id)
        return {"url": self.storage.generate_signed_url(document.blob_path), "filename": document.filename}

    def create_share_link(self, document_id: uuid.UUID, expires_in_days: int = 7) -> str:
        if not 1 <= expires_in_days <= MAX_SHARE_DAYS:
            raise ValidationError(f"expiresInDays must be between 1 and {MAX_SHARE_DAYS}")
        document = self.require(document_id)
        return self.storage.generate_share_url(document.blob_path, expires_in_days)

    def get_label_data(self, document_id: uuid.UUID) -> Optional[dict[str, Any]]:
        document = self.get(document_id)
        if document is None:
            return None
        return {
            "productName": document.product_name or document.filename,
            "companyCode": document.company_code,
            "department": document.department,
            "site": document.site,
            "filename": document.filename,
        }
