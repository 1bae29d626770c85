"""
HTTP client for the concept gateway, the identity provider and the chat relay.

Every failure surfaces as GatewayError; nothing here retries.
"""

import logging
from typing import AsyncIterator, Iterable, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from mct.app.models.concept import ChangeNotification, Concept, ConceptCreate, ConceptSummary, ConceptUpdate
from mct.app.models.user import AuthSession, User
from mct.dashboard.config import DashboardSettings

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """A gateway call failed. `status_code` is None for transport failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[Tuple[str, str]]:
    """Yields (event, data) per Server-Sent Events frame. Comment lines (pings) are skipped."""
    event, data = "message", []
    async for line in lines:
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class GatewayClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        api_prefix: str = "/api/v1",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.access_token: Optional[str] = None
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + api_prefix,
            headers={"apikey": api_key},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: DashboardSettings, **kwargs) -> "GatewayClient":
        return cls(
            settings.GATEWAY_URL,
            settings.GATEWAY_API_KEY,
            api_prefix=settings.API_PREFIX,
            timeout=settings.REQUEST_TIMEOUT,
            **kwargs,
        )

    def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.access_token}"} if self.access_token else {}

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            return body["error"]
        return response.reason_phrase

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, path, headers=self._auth_headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise GatewayError(f"{method} {path} failed: {exc}") from exc
        if response.is_error:
            raise GatewayError(self._error_message(response), response.status_code)
        return response

    @staticmethod
    def _json(response: httpx.Response):
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError(
                f"Gateway answered {response.status_code} with a non-JSON body", response.status_code
            ) from exc

    @staticmethod
    def _parse(model, payload):
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise GatewayError(f"Unexpected {model.__name__} payload from gateway: {exc}") from exc

    # Identity

    async def sign_up(
        self,
        email: str,
        password: str,
        *,
        full_name: Optional[str] = None,
        redirect_to: Optional[str] = None,
    ) -> AuthSession:
        response = await self._request(
            "POST",
            "/auth/sign-up",
            json={"email": email, "password": password, "full_name": full_name, "redirect_to": redirect_to},
        )
        session = self._parse(AuthSession, self._json(response))
        self.access_token = session.access_token
        return session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        response = await self._request("POST", "/auth/sign-in", json={"email": email, "password": password})
        session = self._parse(AuthSession, self._json(response))
        self.access_token = session.access_token
        return session

    async def sign_out(self) -> None:
        if not self.access_token:
            return
        try:
            await self._request("POST", "/auth/sign-out")
        finally:
            self.access_token = None

    async def get_user(self) -> Optional[User]:
        """The signed-in user, or None when there is no valid session."""
        if not self.access_token:
            return None
        try:
            response = await self._request("GET", "/auth/user")
        except GatewayError as exc:
            if exc.status_code == 401:
                return None
            raise
        return self._parse(User, self._json(response))

    # Concepts

    async def list_concepts(self) -> List[Concept]:
        response = await self._request("GET", "/concepts")
        payload = self._json(response)
        if not isinstance(payload, list):
            raise GatewayError("Unexpected concept list payload from gateway")
        return [self._parse(Concept, item) for item in payload]

    async def create_concept(self, payload: ConceptCreate) -> Concept:
        response = await self._request("POST", "/concepts", json=payload.model_dump(mode="json"))
        return self._parse(Concept, self._json(response))

    async def update_concept(self, concept_id: str, update: ConceptUpdate) -> Concept:
        response = await self._request("PATCH", f"/concepts/{concept_id}", json=update.changes())
        return self._parse(Concept, self._json(response))

    async def delete_concept(self, concept_id: str) -> None:
        await self._request("DELETE", f"/concepts/{concept_id}")

    async def subscribe_changes(self) -> AsyncIterator[ChangeNotification]:
        """
        Long-lived change feed for the signed-in user. Raises GatewayError if
        the stream cannot be opened or drops; ends quietly if the server closes it.
        """
        try:
            async with self._http.stream(
                "GET",
                "/concepts/changes",
                headers=self._auth_headers(),
                timeout=httpx.Timeout(self.timeout, read=None),
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise GatewayError(self._error_message(response), response.status_code)
                async for event, data in iter_sse(response.aiter_lines()):
                    if event != "change":
                        continue
                    try:
                        yield ChangeNotification.model_validate_json(data)
                    except ValidationError:
                        logger.warning("Ignoring malformed change notification: %s", data[:200])
        except httpx.HTTPError as exc:
            raise GatewayError(f"Change feed failed: {exc}") from exc

    # Chat

    async def stream_chat(
        self,
        message: str,
        concepts: Iterable[ConceptSummary] = (),
        user_id: Optional[str] = None,
    ) -> AsyncIterator[str]:
        payload = {
            "message": message,
            "concepts": [concept.model_dump() for concept in concepts],
            "userId": user_id,
        }
        try:
            async with self._http.stream(
                "POST",
                "/chat",
                json=payload,
                timeout=httpx.Timeout(self.timeout, read=None),
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise GatewayError(self._error_message(response), response.status_code)
                async for text in response.aiter_text():
                    if text:
                        yield text
        except httpx.HTTPError as exc:
            raise GatewayError(f"Chat request failed: {exc}") from exc

    async def aclose(self) -> None:
        await self._http.aclose()
