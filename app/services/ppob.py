"""
Digiflazz purchase orchestration.

The ledger and the provider cannot be committed together, so each purchase is a
small saga persisted on its ppob_transactions row:

    INQUIRY -> DEBITED -> SUBMITTED -> SUCCESS
                                    -> FAILED -> REVERSED

The next state is written before the call that leads to it, so a row found in
DEBITED/SUBMITTED without a terminal provider verdict can be picked up again by
reconcile_pending().
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
import logging
import secrets
import time

from app.core.config import ProviderConfig
from app.core.errors import (
    BusinessFailure,
    ExternalServiceError,
    InsufficientBalanceError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from app.models import OPEN_DEBIT_STATUSES, PpobProduct, PpobStatus, PpobTransaction, ProductType
from app.services.catalog import ProductCatalog
from app.services.digiflazz import (
    DigiflazzApiError,
    DigiflazzClient,
    ExplicitFailurePolicy,
    OutcomePolicy,
    Outcome,
    ProviderResponse,
)
from app.services.ledger import LedgerGateway
from app.services.pin import is_well_formed_pin, verify_account_pin
from app.services.ppob_records import TransactionStore


logger = logging.getLogger(__name__)

REVERSAL_DESCRIPTION = "PPOB reversal {ref_id}"


def new_ref_id() -> str:
    return f"PPOB{secrets.token_hex(8).upper()}"


def _safe_message(value, limit: int = 500) -> str | None:
    text = str(value or "").strip()
    return text[:limit] if text else None


class PaymentOrchestrator:
    def __init__(
        self,
        *,
        ledger: LedgerGateway,
        provider: DigiflazzClient,
        catalog: ProductCatalog,
        store: TransactionStore,
        config: ProviderConfig,
        policy: OutcomePolicy | None = None,
        status_delay_seconds: float = 2.0,
        sleep=time.sleep,
    ):
        self.ledger = ledger
        self.provider = provider
        self.catalog = catalog
        self.store = store
        self.config = config
        self.policy = policy or ExplicitFailurePolicy()
        self.status_delay_seconds = status_delay_seconds
        self.sleep = sleep

    # Prepaid

    def topup(
        self,
        user_id: str,
        *,
        account_id: str,
        buyer_sku_code: str,
        customer_no: str,
        pin: str,
        amount=None,
    ) -> PpobTransaction:
        customer_no = self._require_customer_no(customer_no)
        verify_account_pin(self.ledger, user_id, account_id, pin)
        product = self.catalog.get(buyer_sku_code)
        nominal = self._customer_nominal(product, amount)
        price = Decimal(str(product.price or 0))
        if price <= 0:
            raise ValidationError("Product has no valid price")
        self._ensure_provider_deposit(price)

        ref_id = new_ref_id()
        row = self.store.upsert(
            ref_id,
            user_id=user_id,
            account_id=account_id,
            buyer_sku_code=product.buyer_sku_code,
            customer_no=customer_no,
            product_type=ProductType.PREPAID.value,
            amount_nominal=nominal,
            price=price,
            status=PpobStatus.DEBITED.value,
        )
        row = self._debit(row, f"PPOB topup {product.buyer_sku_code} {customer_no}")
        logger.info("Submitting %s to Digiflazz (%s key)", ref_id, self.config.key_label)

        try:
            response = self.provider.topup(row.buyer_sku_code, row.customer_no, ref_id, amount=nominal)
        except DigiflazzApiError as exc:
            self._fail_and_reverse(row, message=exc.message)
            raise
        row = self._record(row, response, "/transaction")
        if self.policy.classify(response) == Outcome.FAILURE:
            self._fail_and_reverse(row, response=response)
            raise self._failure_error(row, response)

        self.sleep(self.status_delay_seconds)
        try:
            confirmation = self.provider.check_status(row.buyer_sku_code, row.customer_no, ref_id, amount=nominal)
        except DigiflazzApiError as exc:
            logger.warning("Status check for %s failed, leaving it for reconciliation: %s", ref_id, exc.message)
            return row
        return self._settle(row, confirmation, "/transaction#status", raise_on_failure=True)

    # Postpaid

    def inquire_pasca(
        self,
        user_id: str,
        *,
        buyer_sku_code: str,
        customer_no: str,
        account_id: str | None = None,
        amount=None,
    ) -> PpobTransaction:
        customer_no = self._require_customer_no(customer_no)
        product = self.catalog.get(buyer_sku_code)
        nominal = self._customer_nominal(product, amount)
        ref_id = new_ref_id()
        base = {
            "user_id": user_id,
            "account_id": account_id,
            "buyer_sku_code": product.buyer_sku_code,
            "customer_no": customer_no,
            "product_type": ProductType.PASCA.value,
            "amount_nominal": nominal,
        }
        try:
            response = self.provider.inquire_pasca(product.buyer_sku_code, customer_no, ref_id, amount=nominal)
        except DigiflazzApiError as exc:
            self.store.upsert(ref_id, status=PpobStatus.FAILED.value, message=_safe_message(exc.message), **base)
            raise

        bill = response.amount("/data/selling_price", "/data/price")
        row = self.store.upsert(ref_id, price=bill, **base, **self._response_fields(response, PpobStatus.INQUIRY))
        self._log_call(row, response, "/transaction#inq-pasca")
        if self.policy.classify(response) == Outcome.FAILURE:
            row = self.store.upsert(ref_id, status=PpobStatus.FAILED.value)
            raise self._failure_error(row, response)
        if bill is None or bill <= 0:
            row = self.store.upsert(ref_id, status=PpobStatus.FAILED.value)
            raise ExternalServiceError("Digiflazz inquiry returned no bill amount.", raw=response.raw)
        return row

    def pay_pasca(self, user_id: str, *, ref_id: str, account_id: str, pin: str) -> PpobTransaction:
        ref_id = str(ref_id or "").strip()
        if not ref_id:
            raise ValidationError("ref_id is required")
        if not is_well_formed_pin(pin):
            raise ValidationError("pin must be 6 digits")
        row = self._owned_row(user_id, ref_id)
        if row.product_type != ProductType.PASCA.value:
            raise NotFoundError("Transaction not found")
        if row.status != PpobStatus.INQUIRY.value:
            raise ValidationError(f"Transaction is already {row.status}")
        verify_account_pin(self.ledger, user_id, account_id, pin)

        # The charge is always the bill recorded at inquiry time.
        bill = Decimal(str(row.price or 0))
        if bill <= 0:
            raise ValidationError("Transaction has no bill amount")
        row = self.store.transition(
            ref_id, PpobStatus.INQUIRY.value, PpobStatus.DEBITED.value, account_id=account_id
        )
        if row is None:
            raise ValidationError("Transaction is already being paid")
        row = self._debit(row, f"PPOB pay-pasca {row.buyer_sku_code} {row.customer_no}")

        pay_response = None
        pay_error = None
        try:
            pay_response = self.provider.pay_pasca(row.buyer_sku_code, row.customer_no, ref_id, amount=row.amount_nominal)
        except DigiflazzApiError as exc:
            pay_error = exc
            row = self.store.upsert(ref_id, status=PpobStatus.SUBMITTED.value, message=_safe_message(exc.message))
        else:
            row = self._record(row, pay_response, "/transaction#pay-pasca")

        # Postpaid settlement is asynchronous on the provider side; always ask for the authoritative state.
        self.sleep(self.status_delay_seconds)
        status_response = None
        try:
            status_response = self.provider.status_pasca(row.buyer_sku_code, row.customer_no, ref_id)
        except DigiflazzApiError as exc:
            logger.warning("status-pasca for %s failed: %s", ref_id, exc.message)

        # An explicit "gagal" on the pay call counts; an HTTP-level failure defers to the status query.
        pay_failed = (
            pay_response is not None
            and pay_response.ok
            and self.policy.classify(pay_response) == Outcome.FAILURE
        )
        if status_response is not None:
            row = self._record(row, status_response, "/transaction#status-pasca")
            verdict = self.policy.classify(status_response)
            if verdict == Outcome.FAILURE or pay_failed:
                failing = status_response if verdict == Outcome.FAILURE else pay_response
                self._fail_and_reverse(row, response=failing)
                raise self._failure_error(row, failing)
            return self._finalize(row, verdict)

        if pay_error is not None:
            self._fail_and_reverse(row, message=pay_error.message)
            raise pay_error
        if self.policy.classify(pay_response) == Outcome.FAILURE:
            self._fail_and_reverse(row, response=pay_response)
            raise self._failure_error(row, pay_response)
        return row

    # Status queries and reconciliation

    def check_status(self, user_id: str, ref_id: str) -> PpobTransaction:
        row = self._owned_row(user_id, ref_id)
        if row.product_type != ProductType.PREPAID.value:
            raise NotFoundError("Transaction not found")
        return self._refresh(row)

    def status_pasca(self, user_id: str, ref_id: str) -> PpobTransaction:
        row = self._owned_row(user_id, ref_id)
        if row.product_type != ProductType.PASCA.value:
            raise NotFoundError("Transaction not found")
        return self._refresh(row)

    def reconcile_pending(self, older_than_seconds: int = 300, limit: int = 100) -> dict:
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=older_than_seconds)
        summary = {"checked": 0, "reversed": 0, "settled": 0, "skipped": 0, "errors": 0}
        for row in self.store.list_open_debits(cutoff, limit=limit):
            reason = self._unsettleable_reason(row)
            if reason:
                logger.warning("Skipping %s (%s): %s", row.ref_id, row.status, reason)
                summary["skipped"] += 1
                continue
            summary["checked"] += 1
            try:
                row = self._refresh(row)
            except ExternalServiceError as exc:
                logger.warning("Reconciliation of %s failed: %s", row.ref_id, exc.message)
                summary["errors"] += 1
                continue
            if row.status == PpobStatus.REVERSED.value:
                summary["reversed"] += 1
            elif row.status == PpobStatus.SUCCESS.value:
                summary["settled"] += 1
        logger.info("Reconciliation finished: %s", summary)
        return summary

    def _refresh(self, row: PpobTransaction) -> PpobTransaction:
        reason = self._unsettleable_reason(row)
        if reason:
            logger.info("Not querying Digiflazz for %s (%s): %s", row.ref_id, row.status, reason)
            return row

        if row.product_type == ProductType.PASCA.value:
            response = self.provider.status_pasca(row.buyer_sku_code, row.customer_no, row.ref_id)
            endpoint = "/transaction#status-pasca"
        else:
            response = self.provider.check_status(
                row.buyer_sku_code, row.customer_no, row.ref_id, amount=row.amount_nominal
            )
            endpoint = "/transaction#status"

        if row.status in OPEN_DEBIT_STATUSES:
            return self._settle(row, response, endpoint, raise_on_failure=False)

        # Rows without an open debit only get the provider's latest wording.
        self._log_call(row, response, endpoint)
        if row.status == PpobStatus.SUCCESS.value and self.policy.classify(response) == Outcome.FAILURE:
            logger.warning("Provider now reports %s as failed after it was settled as success", row.ref_id)
        return self.store.upsert(
            row.ref_id,
            rc=response.rc or row.rc,
            message=response.message or row.message,
            sn=response.sn or row.sn,
            raw_response=self._raw_body(response),
        )

    # Internals

    def _settle(self, row: PpobTransaction, response: ProviderResponse, endpoint: str, *, raise_on_failure: bool):
        row = self._record(row, response, endpoint)
        verdict = self.policy.classify(response)
        if verdict == Outcome.FAILURE:
            row = self._fail_and_reverse(row, response=response)
            if raise_on_failure:
                raise self._failure_error(row, response)
            return row
        return self._finalize(row, verdict)

    def _finalize(self, row: PpobTransaction, verdict: Outcome) -> PpobTransaction:
        if verdict == Outcome.SUCCESS:
            return self.store.upsert(row.ref_id, status=PpobStatus.SUCCESS.value)
        return row

    @staticmethod
    def _unsettleable_reason(row: PpobTransaction) -> str | None:
        if row.status in OPEN_DEBIT_STATUSES and not row.debit_reference:
            # The debit may or may not have committed; an operator has to look at the ledger.
            return "no recorded debit"
        if row.product_type != ProductType.PASCA.value and not row.raw_request:
            # A prepaid status query re-sends the purchase body, so it would place a new order.
            return "never submitted to Digiflazz"
        return None

    def _debit(self, row: PpobTransaction, description: str) -> PpobTransaction:
        try:
            movement = self.ledger.debit(row.user_id, row.account_id, Decimal(str(row.price)), description)
        except LedgerError as exc:
            self.store.upsert(row.ref_id, status=PpobStatus.FAILED.value, message=_safe_message(exc.message))
            raise exc.as_payment_error() from exc
        except ValidationError as exc:
            self.store.upsert(row.ref_id, status=PpobStatus.FAILED.value, message=_safe_message(exc.message))
            raise
        logger.info("Debited %s from account %s for %s", row.price, row.account_id, row.ref_id)
        return self.store.upsert(row.ref_id, debit_reference=movement.movement_id)

    def _fail_and_reverse(
        self,
        row: PpobTransaction,
        *,
        response: ProviderResponse | None = None,
        message: str | None = None,
    ) -> PpobTransaction:
        fields = {"status": PpobStatus.FAILED.value}
        if message:
            fields["message"] = _safe_message(message)
        row = self.store.upsert(row.ref_id, **fields)
        if row.reversal_reference:
            return row
        if not row.debit_reference:
            logger.error("Not reversing %s: no recorded debit, needs manual follow-up", row.ref_id)
            return row
        try:
            movement = self.ledger.credit(
                row.user_id,
                row.account_id,
                Decimal(str(row.price)),
                REVERSAL_DESCRIPTION.format(ref_id=row.ref_id),
            )
        except (LedgerError, ValidationError) as exc:
            # The caller still gets the provider failure; the row stays FAILED for manual follow-up.
            logger.error("Reversal for %s failed: %s", row.ref_id, exc.message)
            return row
        logger.info(
            "Reversed %s for %s (rc=%s status=%s)",
            row.price,
            row.ref_id,
            response.rc if response else None,
            response.status if response else None,
        )
        return self.store.upsert(
            row.ref_id,
            status=PpobStatus.REVERSED.value,
            reversal_reference=movement.movement_id,
        )

    def _record(self, row: PpobTransaction, response: ProviderResponse, endpoint: str) -> PpobTransaction:
        self._log_call(row, response, endpoint)
        return self.store.upsert(row.ref_id, **self._response_fields(response, PpobStatus.SUBMITTED))

    def _response_fields(self, response: ProviderResponse, status: PpobStatus) -> dict:
        return {
            "status": status.value,
            "rc": response.rc,
            "message": _safe_message(response.message),
            "sn": response.sn,
            "raw_request": response.request,
            "raw_response": self._raw_body(response),
        }

    @staticmethod
    def _raw_body(response: ProviderResponse) -> dict:
        return response.body if response.body else {"raw": response.raw}

    def _log_call(self, row: PpobTransaction, response: ProviderResponse, endpoint: str) -> None:
        self.store.log_call(
            user_id=row.user_id,
            endpoint=endpoint,
            status_code=response.status_code,
            duration_ms=response.duration_ms,
            reference=row.ref_id,
        )

    def _failure_error(self, row: PpobTransaction, response: ProviderResponse):
        if not response.ok:
            logger.warning("Digiflazz HTTP %s for %s: %s", response.status_code, row.ref_id, response.raw[:500])
            return ExternalServiceError(
                f"Digiflazz returned HTTP {response.status_code}",
                raw=response.raw,
                upstream_status=response.status_code,
            )
        return BusinessFailure(response.message or "Transaksi gagal", rc=response.rc, ref_id=row.ref_id)

    def _ensure_provider_deposit(self, price: Decimal) -> None:
        # Read-then-act: the ledger debit that follows is not serialized with this check.
        deposit = self.provider.check_balance()
        if deposit < price:
            logger.warning("Digiflazz deposit %s below price %s", deposit, price)
            raise InsufficientBalanceError("Provider balance is insufficient")

    def _owned_row(self, user_id: str, ref_id: str) -> PpobTransaction:
        row = self.store.get(ref_id)
        if not row or str(row.user_id) != str(user_id):
            raise NotFoundError("Transaction not found")
        return row

    @staticmethod
    def _require_customer_no(customer_no: str) -> str:
        value = str(customer_no or "").strip()
        if not value:
            raise ValidationError("customer_no is required")
        return value

    @staticmethod
    def _customer_nominal(product: PpobProduct, amount) -> Decimal | None:
        if not product.is_emoney or amount is None:
            return None
        value = Decimal(str(amount))
        if value <= 0:
            raise ValidationError("amount must be > 0")
        return value
