"""
Firebase Cloud Messaging fan-out.

One OAuth access token is minted per dispatch and shared by every send. Sends run
as asyncio tasks behind a semaphore; tokens the backend reports as unregistered
are dropped, any other failure stops the dispatch.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

import httpx
from jose import jwt
from sqlalchemy.orm import Session

from app.core.errors import ExternalServiceError, ValidationError
from app.models import DeviceToken


logger = logging.getLogger(__name__)

FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_TTL_SECONDS = 3600


@dataclass(frozen=True)
class ServiceAccount:
    project_id: str
    client_email: str
    private_key: str
    token_uri: str = DEFAULT_TOKEN_URI


def load_service_account(path: str) -> Optional[ServiceAccount]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except FileNotFoundError:
        logger.info("Firebase service account not loaded (%s): file not found", path)
        return None
    except (OSError, ValueError) as exc:
        logger.info("Firebase service account invalid (%s): %s", path, exc)
        return None
    try:
        return ServiceAccount(
            project_id=raw["project_id"],
            client_email=raw["client_email"],
            private_key=raw["private_key"],
            token_uri=raw.get("token_uri") or DEFAULT_TOKEN_URI,
        )
    except (KeyError, TypeError) as exc:
        logger.info("Firebase service account invalid (%s): missing %s", path, exc)
        return None


def build_assertion(account: ServiceAccount, now: Optional[int] = None) -> str:
    issued_at = int(now if now is not None else time.time())
    claims = {
        "iss": account.client_email,
        "scope": FCM_SCOPE,
        "aud": account.token_uri,
        "iat": issued_at,
        "exp": issued_at + ASSERTION_TTL_SECONDS,
    }
    return jwt.encode(claims, account.private_key, algorithm="RS256")


def build_message(token: str, title: str, body: str, data: Optional[dict] = None) -> dict:
    message = {
        "token": token,
        "notification": {"title": title, "body": body},
    }
    if data:
        # FCM only accepts string values in the data map.
        message["data"] = {str(key): str(value) for key, value in data.items()}
    return {"message": message}


def resolve_device_tokens(db: Session, user_ids: Iterable[str]) -> set[str]:
    ids = sorted({str(user_id).strip() for user_id in user_ids if str(user_id or "").strip()})
    if not ids:
        return set()
    rows = db.query(DeviceToken.token).filter(DeviceToken.user_id.in_(ids)).all()
    # A user can be signed in on several devices; the set also folds duplicate registrations.
    return {row[0] for row in rows if row[0]}


def register_device_token(db: Session, user_id: str, token: str, platform: Optional[str] = None) -> DeviceToken:
    value = str(token or "").strip()
    if not value:
        raise ValidationError("fcm_token is required")
    row = db.query(DeviceToken).filter(DeviceToken.token == value).first()
    if not row:
        row = DeviceToken(token=value)
        db.add(row)
    row.user_id = user_id
    row.platform = platform
    db.commit()
    db.refresh(row)
    return row


class UnregisteredTokenError(Exception):
    def __init__(self, token: str):
        super().__init__(token)
        self.token = token


class DispatchCancelled(Exception):
    pass


@dataclass
class DispatchResult:
    sent: int = 0
    message_ids: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)


def _is_unregistered(response: httpx.Response) -> bool:
    if response.status_code == 404:
        return True
    try:
        error = (response.json() or {}).get("error") or {}
    except ValueError:
        return False
    if not isinstance(error, dict):
        return False
    for detail in error.get("details") or []:
        if isinstance(detail, dict) and detail.get("errorCode") == "UNREGISTERED":
            return True
    return error.get("status") == "NOT_FOUND"


class NotificationDispatcher:
    def __init__(
        self,
        account: Optional[ServiceAccount],
        *,
        concurrency: int = 8,
        timeout_seconds: int = 15,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account = account
        self.concurrency = max(1, int(concurrency))
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def _require_account(self) -> ServiceAccount:
        if self.account is None:
            raise ExternalServiceError("firebase service account not configured")
        return self.account

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport)

    async def fetch_access_token(self, client: httpx.AsyncClient) -> str:
        account = self._require_account()
        try:
            response = await client.post(
                account.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": build_assertion(account)},
            )
        except httpx.HTTPError as exc:
            raise ExternalServiceError("oauth token request failed", raw=str(exc)) from exc
        if not response.is_success:
            logger.warning("OAuth token exchange failed status=%s body=%s", response.status_code, response.text[:500])
            raise ExternalServiceError(
                f"oauth token error: {response.text[:300]}",
                raw=response.text,
                upstream_status=response.status_code,
            )
        try:
            access_token = response.json().get("access_token")
        except (ValueError, AttributeError) as exc:
            raise ExternalServiceError("oauth token response is not JSON", raw=response.text) from exc
        if not access_token:
            raise ExternalServiceError("oauth token response missing access_token", raw=response.text)
        return access_token

    async def send(self, client: httpx.AsyncClient, access_token: str, token: str, payload: dict) -> str:
        account = self._require_account()
        url = FCM_SEND_URL.format(project_id=account.project_id)
        try:
            response = await client.post(url, json=payload, headers={"Authorization": f"Bearer {access_token}"})
        except httpx.HTTPError as exc:
            raise ExternalServiceError("fcm send failed", raw=str(exc)) from exc
        if response.is_success:
            try:
                return str(response.json().get("name") or "")
            except (ValueError, AttributeError) as exc:
                raise ExternalServiceError("fcm send response is not JSON", raw=response.text) from exc
        if _is_unregistered(response):
            raise UnregisteredTokenError(token)
        logger.warning("FCM send failed status=%s body=%s", response.status_code, response.text[:500])
        raise ExternalServiceError(
            f"fcm send error: {response.text[:300]}",
            raw=response.text,
            upstream_status=response.status_code,
        )

    async def send_single(self, token: str, title: str, body: str, data: Optional[dict] = None) -> str:
        if not str(token or "").strip():
            raise ValidationError("token is required")
        if not str(title or "").strip() or not str(body or "").strip():
            raise ValidationError("title and body are required")
        async with self._client() as client:
            access_token = await self.fetch_access_token(client)
            try:
                return await self.send(client, access_token, token, build_message(token, title, body, data))
            except UnregisteredTokenError as exc:
                raise ExternalServiceError("fcm token is not registered", upstream_status=404) from exc

    async def dispatch(self, tokens: Iterable[str], title: str, body: str, data: Optional[dict] = None) -> DispatchResult:
        unique = sorted({str(token).strip() for token in tokens if str(token or "").strip()})
        result = DispatchResult()
        if not unique:
            return result
        self._require_account()

        async with self._client() as client:
            access_token = await self.fetch_access_token(client)
            semaphore = asyncio.Semaphore(self.concurrency)
            cancelled = asyncio.Event()

            async def send_one(token: str) -> str:
                async with semaphore:
                    if cancelled.is_set():
                        raise DispatchCancelled()
                    return await self.send(client, access_token, token, build_message(token, title, body, data))

            tasks = [asyncio.create_task(send_one(token)) for token in unique]
            failure: Optional[ExternalServiceError] = None
            try:
                for next_done in asyncio.as_completed(tasks):
                    try:
                        message_id = await next_done
                    except UnregisteredTokenError as exc:
                        logger.info("Dropping unregistered FCM token ...%s", exc.token[-8:])
                        result.dropped.append(exc.token)
                        continue
                    except ExternalServiceError as exc:
                        failure = exc
                        break
                    result.message_ids.append(message_id)
            finally:
                cancelled.set()
                for task in tasks:
                    if not task.done():
                        task.cancel()
                # Never leave sends running after we return.
                await asyncio.gather(*tasks, return_exceptions=True)

        result.sent = len(result.message_ids)
        if failure is not None:
            logger.warning(
                "FCM dispatch aborted after %s of %s sends: %s", result.sent, len(unique), failure.message
            )
            raise failure
        logger.info("FCM dispatch sent=%s dropped=%s total=%s", result.sent, len(result.dropped), len(unique))
        return result
