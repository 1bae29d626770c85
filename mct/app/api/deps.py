"""Dependency providers shared by the endpoints."""

from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Header, status

from mct.app.core.config import settings
from mct.app.db.arango import db
from mct.app.models.user import User
from mct.app.services.change_feed import change_feed
from mct.app.services.chat import ChatRelay
from mct.app.services.concepts import ConceptTable
from mct.app.services.identity import AuthError, IdentityService
from mct.app.services.llm import get_llm


def require_api_key(apikey: Annotated[Optional[str], Header()] = None) -> None:
    """Every gateway call carries the project's public API key."""
    if not apikey or apikey != settings.PUBLIC_API_KEY:
        raise AuthError("invalid_api_key", "Invalid API key", status_code=status.HTTP_401_UNAUTHORIZED)


@lru_cache(maxsize=1)
def get_identity_service() -> IdentityService:
    settings.require("Identity provider", "JWT_SECRET_KEY")
    return IdentityService(
        db.get_db(),
        settings.JWT_SECRET_KEY,
        token_ttl_minutes=settings.TOKEN_TTL_MINUTES,
        signup_redirect_url=settings.SIGNUP_REDIRECT_URL,
    )


@lru_cache(maxsize=1)
def get_concept_table() -> ConceptTable:
    return ConceptTable(db.get_db(), change_feed)


@lru_cache(maxsize=1)
def get_chat_relay() -> ChatRelay:
    return ChatRelay(get_llm())


def get_bearer_token(
    authorization: Annotated[Optional[str], Header(alias="Authorization")] = None,
) -> str:
    if not authorization:
        raise AuthError("missing_token", "Authorization header required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthError("missing_token", "Authorization header must be in format: Bearer <token>")
    return token


async def get_current_user(
    token: str = Depends(get_bearer_token),
    identity: IdentityService = Depends(get_identity_service),
) -> User:
    return await identity.get_user(token)
