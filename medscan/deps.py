# medscan/deps.py
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from openai import OpenAIError

from medscan.config import get_async_client
from medscan.errors import ProfileError
from medscan.profiles import ProfileService, health_context_block
from medscan.storage import ContactStore, JsonFileStore, SessionStore

logger = logging.getLogger(__name__)


def get_store(request: Request) -> JsonFileStore:
    return request.app.state.store


def get_session_store(store: JsonFileStore = Depends(get_store)) -> SessionStore:
    return SessionStore(store)


def get_contact_store(store: JsonFileStore = Depends(get_store)) -> ContactStore:
    return ContactStore(store)


def get_profile_service(request: Request) -> ProfileService:
    return request.app.state.profiles


def get_ai_client():
    # None lets the gateway apply its own failure handling
    try:
        return get_async_client()
    except OpenAIError as e:
        logger.error("OpenAI client unavailable: %s", e)
        return None


def get_access_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Expected a bearer token")
    return token


def get_user_id(
    token: Optional[str] = Depends(get_access_token),
    profiles: ProfileService = Depends(get_profile_service),
) -> Optional[str]:
    """None for guests, the Supabase user id for a valid bearer token."""
    if token is None:
        return None
    try:
        return profiles.resolve_user_id(token)
    except ProfileError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


def get_health_context(
    user_id: Optional[str] = Depends(get_user_id),
    token: Optional[str] = Depends(get_access_token),
    profiles: ProfileService = Depends(get_profile_service),
) -> str:
    return health_context_block(profiles.get_profile(user_id, token))
