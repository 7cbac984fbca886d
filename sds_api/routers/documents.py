from __future__ import annotations

import json
import uuid
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, Field

from ..dependencies.auth import require_admin, require_auth, require_editor
from ..dependencies.services import document_service
from ..services.documents import (
    MAX_SHARE_DAYS,
    DocumentService,
    IncomingFile,
    parse_document_id,
    serialize_document,
)
from ..services.sessions import SessionClaims
from ..services.spreadsheet import XLSX_CONTENT_TYPE

router = APIRouter(prefix="/documents")

MAX_UPLOAD_BYTES = 50 * 1024 * 1024
MAX_BULK_FILES = 100
EXPORT_FILENAME = "documents-metadata.xlsx"


class MetadataUpdate(BaseModel):
    productName: Optional[str] = None
    department: Optional[str] = None
    site: Optional[str] = None
    tags: Optional[List[str]] = None


class BulkMetadataUpdate(BaseModel):
    ids: List[str] = Field(default_factory=list)
    metadata: MetadataUpdate = Field(default_factory=MetadataUpdate)


class ExportRequest(BaseModel):
    ids: Optional[List[str]] = None


class ShareRequest(BaseModel):
    expiresInDays: int = Field(default=7, ge=1, le=MAX_SHARE_DAYS)


def _document_id(raw: str) -> uuid.UUID:
    document_id = parse_document_id(raw)
    if document_id is None:
        raise HTTPException(status_code=400, detail="Invalid document id")
    return document_id


def _parse_tags(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail="tags must be a JSON array of strings") from exc
    if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
        raise HTTPException(status_code=400, detail="tags must be a JSON array of strings")
    return value


def _read_upload(upload: UploadFile) -> IncomingFile:
    if not upload.filename:
        raise HTTPException(status_code=400, detail="Filename required")
    content = upload.file.read(MAX_UPLOAD_BYTES + 1)
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File too large.")
    return IncomingFile(
        filename=upload.filename,
        content=content,
        content_type=upload.content_type or "application/octet-stream",
    )


@router.get("")
def search_documents(
    q: Optional[str] = Query(default=None),
    companyCode: Optional[str] = Query(default=None),
    department: Optional[str] = Query(default=None),
    site: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    _: SessionClaims = Depends(require_auth),
    service: DocumentService = Depends(document_service),
) -> dict[str, Any]:
    return service.search(q, companyCode, department, site, page, limit)


@router.post("", status_code=201)
def upload_document(
    file: UploadFile = File(...),
    companyCode: str = Form(default="default"),
    productName: Optional[str] = Form(default=None),
    department: Optional[str] = Form(default=None),
    site: Optional[str] = Form(default=None),
    tags: Optional[str] = Form(default=None),
    _: SessionClaims = Depends(require_editor),
    service: DocumentService = Depends(document_service),
) -> dict[str, Any]:
    incoming = _read_upload(file)
    document = service.upload(
        incoming,
        companyCode or "default",
        product_name=productName or None,
        department=department or None,
        site=site or None,
        tags=_parse_tags(tags),
    )
    return serialize_document(document)


@router.post("/bulk")
def bulk_upload_documents(
    files: List[UploadFile] = File(...),
    companyCode: str = Form(default="default"),
    _: SessionClaims = Depends(require_admin),
    service: DocumentService = Depends(document_service),
) -> dict[str, Any]:
    if len(files) > MAX_BULK_FILES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_BULK_FILES} files per request")
    return service.bulk_upload([_read_upload(upload) for upload in files], companyCode or "default")


@router.patch("/bulk")
def bulk_update_documents(
    payload: BulkMetadataUpdate,
    _: SessionClaims = Depends(require_admin),
    service: DocumentService = Depends(document_service),
) -> dict[str, int]:
    fields = payload.metadata.model_dump(exclude_unset=True)
    return service.bulk_update_metadata(payload.ids, fields)


@router.post("/export-excel")
def export_documents(
    payload: Optional[ExportRequest] = Body(default=None),
    _: SessionClaims = Depends(require_auth),
    service: DocumentService = Depends(document_service),
) -> Response:
    content = service.export_to_excel(payload.ids if payload else None)
    return Response(
        content=content,
        media_type=XLSX_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


@router.post("/import-excel")
def import_documents(
    file: UploadFile = File(...),
    _: SessionClaims = Depends(require_editor),
    service: DocumentService = Depends(document_service),
) -> dict[str, int]:
    incoming = _read_upload(file)
    return service.import_from_excel(incoming.content)


@router.get("/{doc_id}")
def get_document(
    doc_id: str,
    _: SessionClaims = Depends(require_auth),
    service: DocumentService = Depends(document_service),
) -> dict[str, Any]:
    return serialize_document(service.require(_document_id(doc_id)))


@router.patch("/{doc_id}")
def update_document(
    doc_id: str,
    payload: MetadataUpdate,
    _: SessionClaims = Depends(require_editor),
    service: DocumentService = Depends(document_service),
) -> dict[str, Any]:
    document = service.update_metadata(_document_id(doc_id), payload.model_dump(exclude_unset=True))
    return serialize_document(document)


@router.get("/{doc_id}/download")
def download_document(
    doc_id: str,
    _: SessionClaims = Depends(require_auth),
    service: DocumentService = Depends(document_service),
) -> dict[str, str]:
    return service.get_download_url(_document_id(doc_id))


@router.post("/{doc_id}/share")
def share_document(
    doc_id: str,
    payload: Optional[ShareRequest] = Body(default=None),
    _: SessionClaims = Depends(require_auth),
    service: DocumentService = Depends(document_service),
) -> dict[str, str]:
    expires_in_days = payload.expiresInDays if payload else 7
    return {"shareUrl": service.create_share_link(_document_id(doc_id), expires_in_days)}


@router.get("/{doc_id}/label")
def document_label(
    doc_id: str,
    _: SessionClaims = Depends(require_auth),
    service: DocumentService = Depends(document_service),
) -> dict[str, Any]:
    label = service.get_label_data(_document_id(doc_id))
    if label is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return label
