from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, DateTime, Index, String, Text, Uuid
from sqlalchemy.sql import func

from .base import Base


def dump_tags(tags: Any) -> str:
    if not tags:
        return "[]"
    return json.dumps([str(tag) for tag in tags])


def load_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(value, list):
        return []
    return [str(tag) for tag in value]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_company_code", "company_code"),
        Index("ix_documents_created_at", "created_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_code = Column(String, nullable=False)
    filename = Column(String, nullable=False)
    blob_path = Column(String, nullable=False)
    product_name = Column(String, nullable=True)
    department = Column(String, nullable=True)
    site = Column(String, nullable=True)
    tags_json = Column("tags", Text, nullable=False, default="[]")
    full_text = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )

    @property
    def tags(self) -> list[str]:
        return load_tags(self.tags_json)

    @tags.setter
    def tags(self, value: Any) -> None:
        self.tags_json = dump_tags(value)
