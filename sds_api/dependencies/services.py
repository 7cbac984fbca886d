from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from ..services.auth import AuthService
from ..services.documents import DocumentService
from ..services.dynamics365 import Dynamics365Service, get_dynamics_service
from ..services.microsoft import MicrosoftOAuthClient, get_microsoft_client
from ..services.oauth_state import OAuthStateStore, get_oauth_state_store
from ..services.search import SearchService, get_search_service
from ..services.sessions import SessionSigner, get_session_signer
from ..services.storage import StorageService, get_storage_service
from .db import get_db


def dynamics_service() -> Dynamics365Service:
    return get_dynamics_service()


def storage_service() -> StorageService:
    return get_storage_service()


def search_service() -> SearchService:
    return get_search_service()


def session_signer() -> SessionSigner:
    return get_session_signer()


def microsoft_client() -> MicrosoftOAuthClient:
    return get_microsoft_client()


def oauth_state_store() -> OAuthStateStore:
    return get_oauth_state_store()


def auth_service(
    db: Session = Depends(get_db),
    dynamics: Dynamics365Service = Depends(dynamics_service),
    signer: SessionSigner = Depends(session_signer),
) -> AuthService:
    return AuthService(db, dynamics, signer)


def document_service(
    db: Session = Depends(get_db),
    storage: StorageService = Depends(storage_service),
    search: SearchService = Depends(search_service),
) -> DocumentService:
    return DocumentService(db, storage, search)
