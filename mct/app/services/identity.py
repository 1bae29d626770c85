"""Sign-up, sign-in, sign-out and current-user lookup for the gateway."""

from __future__ import annotations

import datetime
import logging
import os
import uuid
from typing import Any, Dict, Optional

import jwt
from arango.exceptions import DocumentInsertError
from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from fastapi import status
from fastapi.concurrency import run_in_threadpool

from mct.app.db.arango import AUTH_SESSIONS, USERS
from mct.app.models.user import AuthSession, SignUpRequest, User, UserCredentials

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Domain-specific authentication error."""

    def __init__(
        self,
        error: str,
        message: str,
        *,
        status_code: int = status.HTTP_401_UNAUTHORIZED,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code


class PasswordHasher:
    """PBKDF2-HMAC-SHA256 with a random per-user salt."""

    def __init__(self, iterations: int = 480_000):
        self.iterations = iterations

    def _kdf(self, salt: bytes) -> PBKDF2HMAC:
        return PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=self.iterations)

    def hash(self, password: str) -> Dict[str, Any]:
        salt = os.urandom(16)
        digest = self._kdf(salt).derive(password.encode("utf-8"))
        return {"salt": salt.hex(), "hash": digest.hex(), "iterations": self.iterations}

    def verify(self, password: str, stored: Dict[str, Any]) -> bool:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=bytes.fromhex(stored["salt"]),
            iterations=stored.get("iterations", self.iterations),
        )
        try:
            kdf.verify(password.encode("utf-8"), bytes.fromhex(stored["hash"]))
            return True
        except InvalidKey:
            return False


class IdentityService:
    """
    Users and sessions live in ArangoDB. An access token is an HS256 JWT whose
    `sid` claim points at a session document; signing out deletes that
    document, which invalidates the token before it expires.
    """

    def __init__(
        self,
        database,
        secret_key: str,
        *,
        token_ttl_minutes: int = 60 * 24 * 7,
        signup_redirect_url: Optional[str] = None,
        hasher: Optional[PasswordHasher] = None,
        algorithm: str = "HS256",
    ) -> None:
        self.db = database
        self.secret_key = secret_key
        self.token_ttl = datetime.timedelta(minutes=token_ttl_minutes)
        self.signup_redirect_url = signup_redirect_url
        self.hasher = hasher or PasswordHasher()
        self.algorithm = algorithm

    @property
    def users(self):
        return self.db.collection(USERS)

    @property
    def sessions(self):
        return self.db.collection(AUTH_SESSIONS)

    def _find_user_by_email(self, email: str) -> Optional[dict]:
        cursor = self.users.find({"email": email}, limit=1)
        return next(iter(cursor), None)

    def _issue_session(self, user_doc: dict, redirect_to: Optional[str] = None) -> AuthSession:
        now = datetime.datetime.now(datetime.UTC)
        expires_at = now + self.token_ttl
        session_id = str(uuid.uuid4())

        self.sessions.insert({
            "_key": session_id,
            "user_id": user_doc["_key"],
            "created_at": now.isoformat(),
            "expires_at": expires_at.isoformat(),
        })
        token = jwt.encode(
            {
                "sub": user_doc["_key"],
                "sid": session_id,
                "iat": int(now.timestamp()),
                "exp": int(expires_at.timestamp()),
            },
            self.secret_key,
            algorithm=self.algorithm,
        )
        return AuthSession(
            access_token=token,
            expires_at=expires_at,
            user=User(**user_doc),
            redirect_to=redirect_to,
        )

    def _decode(self, token: str, *, verify_exp: bool = True) -> Dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": verify_exp},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("token_expired", "Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthError("invalid_token", "Invalid token") from exc

    async def sign_up(self, request: SignUpRequest) -> AuthSession:
        if self._find_user_by_email(request.email):
            raise AuthError("user_exists", "User already registered", status_code=status.HTTP_409_CONFLICT)

        # Key derivation is deliberately slow; keep it off the event loop.
        password = await run_in_threadpool(self.hasher.hash, request.password)
        doc = {
            "_key": str(uuid.uuid4()),
            "email": request.email,
            "full_name": request.full_name,
            "password": password,
            "created_at": datetime.datetime.now(datetime.UTC).isoformat(),
        }
        try:
            self.users.insert(doc)
        except DocumentInsertError as exc:
            # Unique index on email caught a concurrent sign-up
            raise AuthError("user_exists", "User already registered", status_code=status.HTTP_409_CONFLICT) from exc

        logger.info("Registered user %s", doc["_key"])
        return self._issue_session(doc, redirect_to=request.redirect_to or self.signup_redirect_url)

    async def sign_in(self, credentials: UserCredentials) -> AuthSession:
        user_doc = self._find_user_by_email(credentials.email)
        if not user_doc or not await run_in_threadpool(
            self.hasher.verify, credentials.password, user_doc["password"]
        ):
            raise AuthError("invalid_credentials", "Invalid login credentials")
        return self._issue_session(user_doc)

    async def sign_out(self, token: str) -> None:
        claims = self._decode(token, verify_exp=False)
        session_id = claims.get("sid")
        if session_id and self.sessions.has(session_id):
            self.sessions.delete(session_id)
            logger.info("Signed out session %s", session_id)

    async def get_user(self, token: str) -> User:
        claims = self._decode(token)
        session = self.sessions.get(claims.get("sid", "")) if claims.get("sid") else None
        if not session or session.get("user_id") != claims.get("sub"):
            raise AuthError("session_not_found", "Session has ended")

        user_doc = self.users.get(claims["sub"])
        if not user_doc:
            raise AuthError("user_not_found", "User no longer exists")
        return User(**user_doc)
