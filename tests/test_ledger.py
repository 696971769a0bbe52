from decimal import Decimal

import pytest
from sqlalchemy.exc import DBAPIError

from app.core.errors import (
    AuthorizationError,
    ExternalServiceError,
    InsufficientBalanceError,
    LedgerError,
    LedgerErrorCode,
    NotFoundError,
    ValidationError,
)
from app.services.ledger import SqlLedgerGateway, ledger_error_from_db


def _db_error(message):
    return DBAPIError("SELECT lab_fun_withdraw(...)", {}, Exception(message))


class _Result:
    def __init__(self, row=None, scalar=None):
        self._row = row
        self._scalar = scalar

    def mappings(self):
        return self

    def one(self):
        return self._row

    def scalar(self):
        return self._scalar


class _StubSession:
    def __init__(self, *, row=None, scalar=None, error=None):
        self.row = row
        self.scalar = scalar
        self.error = error
        self.statements = []
        self.commits = 0
        self.rollbacks = 0

    def execute(self, statement, params=None):
        self.statements.append((str(statement), params))
        if self.error is not None:
            raise self.error
        return _Result(row=self.row, scalar=self.scalar)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


@pytest.mark.parametrize(
    "message,code",
    [
        ("ERROR:  INSUFFICIENT_FUNDS\nCONTEXT: PL/pgSQL", LedgerErrorCode.INSUFFICIENT_FUNDS),
        ("ACCOUNT_NOT_OWNED", LedgerErrorCode.ACCOUNT_NOT_OWNED),
        ("ACCOUNT_NOT_FOUND", LedgerErrorCode.ACCOUNT_NOT_FOUND),
        ("ACCOUNT_FROM_NOT_FOUND", LedgerErrorCode.ACCOUNT_NOT_FOUND),
        ("AMOUNT_INVALID", LedgerErrorCode.AMOUNT_INVALID),
        ("deadlock detected", LedgerErrorCode.UNKNOWN),
    ],
)
def test_sentinels_map_to_codes(message, code):
    assert ledger_error_from_db(_db_error(message)).code == code


def test_ledger_error_statuses():
    assert LedgerError(LedgerErrorCode.INSUFFICIENT_FUNDS).status_code == 400
    assert LedgerError(LedgerErrorCode.ACCOUNT_NOT_OWNED).status_code == 403
    assert LedgerError(LedgerErrorCode.ACCOUNT_NOT_FOUND).status_code == 404
    assert LedgerError(LedgerErrorCode.UNKNOWN).status_code == 500


def test_ledger_error_as_payment_error():
    assert isinstance(LedgerError(LedgerErrorCode.INSUFFICIENT_FUNDS).as_payment_error(), InsufficientBalanceError)
    assert isinstance(LedgerError(LedgerErrorCode.ACCOUNT_NOT_OWNED).as_payment_error(), AuthorizationError)
    assert isinstance(LedgerError(LedgerErrorCode.ACCOUNT_NOT_FOUND).as_payment_error(), NotFoundError)
    assert isinstance(LedgerError(LedgerErrorCode.AMOUNT_INVALID).as_payment_error(), ValidationError)
    assert isinstance(LedgerError(LedgerErrorCode.UNKNOWN, "boom").as_payment_error(), ExternalServiceError)


def test_debit_returns_movement_and_commits():
    session = _StubSession(row={"journal_id": 42, "balance_after": "95000.00"})
    movement = SqlLedgerGateway(session).debit("u1", "ACC-1", Decimal("5000"), "PPOB topup")

    assert movement.movement_id == "42"
    assert movement.new_balance == Decimal("95000.00")
    assert session.commits == 1
    statement, params = session.statements[0]
    assert "lab_fun_withdraw" in statement
    assert params["amount"] == Decimal("5000")


def test_credit_uses_deposit_procedure():
    session = _StubSession(row={"journal_id": 43, "balance_after": "100000"})
    SqlLedgerGateway(session).credit("u1", "ACC-1", Decimal("5000"), "PPOB reversal X")
    assert "lab_fun_deposit" in session.statements[0][0]


def test_debit_failure_rolls_back_and_maps_code():
    session = _StubSession(error=_db_error("INSUFFICIENT_FUNDS"))
    with pytest.raises(LedgerError) as exc:
        SqlLedgerGateway(session).debit("u1", "ACC-1", Decimal("5000"), "PPOB topup")
    assert exc.value.code == LedgerErrorCode.INSUFFICIENT_FUNDS
    assert session.rollbacks == 1
    assert session.commits == 0


def test_non_positive_amount_never_reaches_database():
    session = _StubSession(row={"journal_id": 1, "balance_after": 0})
    with pytest.raises(ValidationError):
        SqlLedgerGateway(session).debit("u1", "ACC-1", Decimal("0"), "x")
    assert session.statements == []


def test_verify_pin_reads_boolean():
    assert SqlLedgerGateway(_StubSession(scalar=True)).verify_pin("u1", "ACC-1", "123456") is True
    assert SqlLedgerGateway(_StubSession(scalar=None)).verify_pin("u1", "ACC-1", "123456") is False
