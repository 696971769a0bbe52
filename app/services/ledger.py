import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from app.core.errors import LedgerError, LedgerErrorCode, ValidationError


logger = logging.getLogger(__name__)

# Sentinels raised by the ledger stored procedures (RAISE EXCEPTION '<SENTINEL>').
_SENTINELS = (
    ("INSUFFICIENT_FUNDS", LedgerErrorCode.INSUFFICIENT_FUNDS),
    ("ACCOUNT_NOT_OWNED", LedgerErrorCode.ACCOUNT_NOT_OWNED),
    ("ACCOUNT_NOT_FOUND", LedgerErrorCode.ACCOUNT_NOT_FOUND),
    ("ACCOUNT_FROM_NOT_FOUND", LedgerErrorCode.ACCOUNT_NOT_FOUND),
    ("AMOUNT_INVALID", LedgerErrorCode.AMOUNT_INVALID),
)


@dataclass(frozen=True)
class LedgerMovement:
    new_balance: Decimal
    movement_id: str


class LedgerGateway(Protocol):
    def verify_pin(self, user_id: str, account_id: str, pin: str) -> bool: ...

    def debit(self, user_id: str, account_id: str, amount: Decimal, description: str) -> LedgerMovement: ...

    def credit(self, user_id: str, account_id: str, amount: Decimal, description: str) -> LedgerMovement: ...


def ledger_error_from_db(exc: DBAPIError) -> LedgerError:
    detail = str(getattr(exc, "orig", None) or exc)
    for sentinel, code in _SENTINELS:
        if sentinel in detail:
            return LedgerError(code)
    return LedgerError(LedgerErrorCode.UNKNOWN, detail.splitlines()[0][:255] if detail else None)


def _positive_amount(amount) -> Decimal:
    value = Decimal(str(amount))
    if value <= 0:
        raise ValidationError("amount must be > 0")
    return value


class SqlLedgerGateway:
    """Movements through the ledger's stored procedures. Every call commits on its own."""

    def __init__(self, db: Session):
        self.db = db

    def verify_pin(self, user_id: str, account_id: str, pin: str) -> bool:
        ok = self.db.execute(
            text("SELECT lab_fun_verify_account_pin(:user_id, :account_id, :pin) AS ok"),
            {"user_id": user_id, "account_id": account_id, "pin": pin},
        ).scalar()
        return bool(ok)

    def debit(self, user_id: str, account_id: str, amount: Decimal, description: str) -> LedgerMovement:
        return self._post("lab_fun_withdraw", user_id, account_id, _positive_amount(amount), description)

    def credit(self, user_id: str, account_id: str, amount: Decimal, description: str) -> LedgerMovement:
        return self._post("lab_fun_deposit", user_id, account_id, _positive_amount(amount), description)

    def _post(self, procedure: str, user_id: str, account_id: str, amount: Decimal, description: str) -> LedgerMovement:
        statement = text(
            f"SELECT journal_id, balance_after FROM {procedure}(:user_id, :account_id, :amount, :description)"
        )
        try:
            row = self.db.execute(
                statement,
                {"user_id": user_id, "account_id": account_id, "amount": amount, "description": description},
            ).mappings().one()
            self.db.commit()
        except DBAPIError as exc:
            self.db.rollback()
            error = ledger_error_from_db(exc)
            logger.warning("Ledger %s failed account=%s code=%s", procedure, account_id, error.code.value)
            raise error from exc
        logger.info("Ledger %s account=%s amount=%s journal=%s", procedure, account_id, amount, row["journal_id"])
        return LedgerMovement(new_balance=Decimal(str(row["balance_after"])), movement_id=str(row["journal_id"]))
