"""Azure Cognitive Search integration for document metadata and content."""

from __future__ import annotations

import logging
from typing import Any, Optional

from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import ResourceNotFoundError
from azure.search.documents import SearchClient
from azure.search.documents.indexes import SearchIndexClient
from azure.search.documents.indexes.models import (
    SearchableField,
    SearchFieldDataType,
    SearchIndex,
    SimpleField,
)

from ..config import AzureSettings, settings
from ..models import Document

logger = logging.getLogger(__name__)

FILTER_FIELDS = ("companyCode", "department", "site")


def _odata_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_filter(**equals: Optional[str]) -> Optional[str]:
    """AND together equality clauses for the non-empty values."""
    clauses = [f"{field} eq {_odata_literal(value)}" for field, value in equals.items() if value]
    return " and ".join(clauses) if clauses else None


def index_definition(name: str) -> SearchIndex:
    return SearchIndex(
        name=name,
        fields=[
            SimpleField(name="id", type=SearchFieldDataType.String, key=True),
            SearchableField(name="companyCode", filterable=True, sortable=True),
            SearchableField(name="filename", sortable=True),
            SearchableField(name="productName", sortable=True),
            SearchableField(name="department", filterable=True, sortable=True),
            SearchableField(name="site", filterable=True, sortable=True),
            SearchableField(name="tags", collection=True, filterable=True),
            SearchableField(name="content"),
        ],
    )


def to_search_document(document: Document) -> dict[str, Any]:
    return {
        "id": str(document.id),
        "companyCode": document.company_code,
        "filename": document.filename,
        "productName": document.product_name or "",
        "department": document.department or "",
        "site": document.site or "",
        "tags": document.tags,
        "content": document.full_text or "",
    }


class SearchService:
    def __init__(self, config: Optional[AzureSettings] = None, client: Any = None) -> None:
        self.config = config or settings.azure
        self._client = client

    def is_configured(self) -> bool:
        return bool(self.config.search_endpoint and self.config.search_api_key) or self._client is not None

    @property
    def client(self) -> SearchClient:
        if self._client is None:
            self._client = SearchClient(
                endpoint=self.config.search_endpoint,
                index_name=self.config.search_index,
                credential=AzureKeyCredential(self.config.search_api_key),
            )
        return self._client

    def search(
        self,
        query: Optional[str],
        company_code: Optional[str],
        department: Optional[str],
        site: Optional[str],
        page: int,
        limit: int,
    ) -> dict[str, Any]:
        if not self.is_configured():
            return {"items": [], "total": 0, "page": page, "limit": limit}

        results = self.client.search(
            search_text=query or "*",
            filter=build_filter(companyCode=company_code, department=department, site=site),
            skip=(page - 1) * limit,
            top=limit,
            include_total_count=True,
        )
        items = [
            {key: value for key, value in result.items() if not key.startswith("@search.")}
            for result in results
        ]
        return {"items": items, "total": results.get_count() or 0, "page": page, "limit": limit}

    def index_document(self, document: Document) -> None:
        if not self.is_configured():
            return
        self.client.upload_documents(documents=[to_search_document(document)])
        logger.debug("search_document_indexed document_id=%s", document.id)


def create_index(config: Optional[AzureSettings] = None, client: Any = None) -> bool:
    """Create the search index. Returns False when it already exists."""
    config = config or settings.azure
    if client is None:
        client = SearchIndexClient(endpoint=config.search_endpoint, credential=AzureKeyCredential(config.search_api_key))

    try:
        client.get_index(config.search_index)
        return False
    except ResourceNotFoundError:
        pass

    client.create_index(index_definition(config.search_index))
    logger.info("search_index_created name=%s", config.search_index)
    return True


def get_search_service() -> SearchService:
    return SearchService()
