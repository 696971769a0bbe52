import enum
import hashlib
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Protocol

import httpx

from app.core.config import ProviderConfig
from app.core.errors import ExternalServiceError


logger = logging.getLogger(__name__)


BALANCE_DISCRIMINATOR = "depo"

CMD_INQUIRY_PASCA = "inq-pasca"
CMD_PAY_PASCA = "pay-pasca"
CMD_STATUS_PASCA = "status-pasca"


def sign(username: str, api_key: str, discriminator: str) -> str:
    return hashlib.md5(f"{username}{api_key}{discriminator}".encode("utf-8")).hexdigest()


def json_pointer(document, pointer: str, default=None):
    if pointer in ("", "/"):
        return document
    current = document
    for token in pointer.lstrip("/").split("/"):
        token = token.replace("~1", "/").replace("~0", "~")
        if isinstance(current, dict):
            if token not in current:
                return default
            current = current[token]
        elif isinstance(current, list):
            try:
                current = current[int(token)]
            except (ValueError, IndexError):
                return default
        else:
            return default
    return current


def _text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


class DigiflazzApiError(ExternalServiceError):
    pass


@dataclass
class ProviderResponse:
    status_code: int
    body: dict
    raw: str
    request: dict = field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def status(self) -> str:
        return _text(json_pointer(self.body, "/data/status", ""))

    @property
    def rc(self) -> str | None:
        return _text(json_pointer(self.body, "/data/rc")) or None

    @property
    def message(self) -> str | None:
        return _text(json_pointer(self.body, "/data/message")) or None

    @property
    def sn(self) -> str | None:
        return _text(json_pointer(self.body, "/data/sn")) or None

    def amount(self, *pointers: str) -> Decimal | None:
        for pointer in pointers:
            value = json_pointer(self.body, pointer)
            if value in (None, ""):
                continue
            try:
                return Decimal(str(value))
            except InvalidOperation:
                continue
        return None


class Outcome(str, enum.Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILURE = "failure"


class OutcomePolicy(Protocol):
    def classify(self, response: ProviderResponse) -> Outcome: ...


class ExplicitFailurePolicy:
    """
    Only the provider's explicit failure strings are compensated.

    Everything else on a 2xx is trusted as success-or-pending.
    """

    failure_statuses = frozenset({"failed", "gagal"})
    success_statuses = frozenset({"sukses", "success"})

    def classify(self, response: ProviderResponse) -> Outcome:
        if not response.ok:
            return Outcome.FAILURE
        status = response.status.lower()
        if status in self.failure_statuses:
            return Outcome.FAILURE
        if status in self.success_statuses:
            return Outcome.SUCCESS
        return Outcome.PENDING


class DigiflazzClient:
    def __init__(self, config: ProviderConfig, *, transport: httpx.BaseTransport | None = None):
        self.config = config
        self.transport = transport

    def _require_credentials(self) -> None:
        if not self.config.username:
            raise DigiflazzApiError("DIGIFLAZZ_USERNAME missing")
        if not self.config.api_key:
            raise DigiflazzApiError("DIGIFLAZZ api key missing")

    def _post(self, path: str, payload: dict) -> ProviderResponse:
        self._require_credentials()
        url = f"{self.config.base_url}{path}"
        start = time.time()
        try:
            with httpx.Client(timeout=self.config.timeout_seconds, transport=self.transport) as client:
                response = client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("Digiflazz POST %s transport error: %s", path, exc)
            raise DigiflazzApiError("Unable to reach Digiflazz.", raw=str(exc)) from exc

        duration_ms = round((time.time() - start) * 1000, 2)
        logger.info(
            "Digiflazz POST %s status=%s duration=%sms key_mode=%s key_suffix=%s",
            path,
            response.status_code,
            duration_ms,
            self.config.key_label,
            self.config.key_suffix,
        )
        raw = response.text or ""
        try:
            body = response.json()
        except ValueError as exc:
            if response.is_success:
                logger.warning("Digiflazz POST %s returned invalid JSON: %s", path, raw[:500])
                raise DigiflazzApiError(
                    "Digiflazz returned invalid JSON response.",
                    raw=raw,
                    upstream_status=response.status_code,
                ) from exc
            body = {}
        if not isinstance(body, dict):
            body = {}
        if not response.is_success:
            logger.warning("Digiflazz POST %s status=%s body=%s", path, response.status_code, raw[:500])
        return ProviderResponse(
            status_code=response.status_code,
            body=body,
            raw=raw,
            request=payload,
            duration_ms=duration_ms,
        )

    @staticmethod
    def _raise_for_status(response: ProviderResponse) -> None:
        if not response.ok:
            raise DigiflazzApiError(
                f"digiflazz status {response.status_code}: {response.raw[:300]}",
                raw=response.raw,
                upstream_status=response.status_code,
            )

    def check_balance(self) -> Decimal:
        payload = {
            "cmd": "deposit",
            "username": self.config.username,
            "sign": sign(self.config.username, self.config.api_key, BALANCE_DISCRIMINATOR),
        }
        response = self._post("/cek-saldo", payload)
        self._raise_for_status(response)
        deposit = response.amount("/data/deposit")
        if deposit is None:
            raise DigiflazzApiError("Digiflazz balance response missing deposit.", raw=response.raw)
        return deposit

    def inquiry_pln(self, customer_no: str) -> dict:
        payload = {
            "username": self.config.username,
            "customer_no": customer_no,
            "sign": sign(self.config.username, self.config.api_key, customer_no),
        }
        response = self._post("/inquiry-pln", payload)
        self._raise_for_status(response)
        data = json_pointer(response.body, "/data")
        if not isinstance(data, dict):
            raise DigiflazzApiError("Digiflazz inquiry-pln response missing data.", raw=response.raw)
        return data

    def transaction(
        self,
        *,
        buyer_sku_code: str,
        customer_no: str,
        ref_id: str,
        commands: str | None = None,
        amount: Decimal | int | None = None,
    ) -> ProviderResponse:
        payload = {
            "username": self.config.username,
            "buyer_sku_code": buyer_sku_code,
            "customer_no": customer_no,
            "ref_id": ref_id,
            "sign": sign(self.config.username, self.config.api_key, ref_id),
        }
        if commands:
            payload["commands"] = commands
        if amount is not None:
            payload["amount"] = int(amount)
        if not self.config.use_production:
            payload["testing"] = True
        return self._post("/transaction", payload)

    def topup(self, buyer_sku_code: str, customer_no: str, ref_id: str, amount=None) -> ProviderResponse:
        return self.transaction(buyer_sku_code=buyer_sku_code, customer_no=customer_no, ref_id=ref_id, amount=amount)

    def check_status(self, buyer_sku_code: str, customer_no: str, ref_id: str, amount=None) -> ProviderResponse:
        # Digiflazz answers a repeated prepaid request for a known ref_id with its current status.
        return self.transaction(buyer_sku_code=buyer_sku_code, customer_no=customer_no, ref_id=ref_id, amount=amount)

    def inquire_pasca(self, buyer_sku_code: str, customer_no: str, ref_id: str, amount=None) -> ProviderResponse:
        return self.transaction(
            buyer_sku_code=buyer_sku_code,
            customer_no=customer_no,
            ref_id=ref_id,
            commands=CMD_INQUIRY_PASCA,
            amount=amount,
        )

    def pay_pasca(self, buyer_sku_code: str, customer_no: str, ref_id: str, amount=None) -> ProviderResponse:
        return self.transaction(
            buyer_sku_code=buyer_sku_code,
            customer_no=customer_no,
            ref_id=ref_id,
            commands=CMD_PAY_PASCA,
            amount=amount,
        )

    def status_pasca(self, buyer_sku_code: str, customer_no: str, ref_id: str) -> ProviderResponse:
        return self.transaction(
            buyer_sku_code=buyer_sku_code,
            customer_no=customer_no,
            ref_id=ref_id,
            commands=CMD_STATUS_PASCA,
        )
