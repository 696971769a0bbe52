import pytest

from app.core.errors import AuthorizationError, ValidationError
from app.services.pin import is_well_formed_pin, verify_account_pin


class _PinLedger:
    def __init__(self, pin="123456"):
        self.pin = pin
        self.calls = []

    def verify_pin(self, user_id, account_id, pin):
        self.calls.append((user_id, account_id, pin))
        return pin == self.pin


def test_well_formed_pin():
    assert is_well_formed_pin("123456")
    assert not is_well_formed_pin("12345")
    assert not is_well_formed_pin("1234567")
    assert not is_well_formed_pin("12a456")
    assert not is_well_formed_pin("")
    assert not is_well_formed_pin(None)


def test_non_ascii_digits_are_rejected():
    assert not is_well_formed_pin("١٢٣٤٥٦")


def test_malformed_pin_never_reaches_ledger():
    ledger = _PinLedger()
    with pytest.raises(ValidationError):
        verify_account_pin(ledger, "u1", "ACC-1", "12345")
    assert ledger.calls == []


def test_wrong_pin_is_unauthorized():
    ledger = _PinLedger()
    with pytest.raises(AuthorizationError):
        verify_account_pin(ledger, "u1", "ACC-1", "654321")
    assert ledger.calls == [("u1", "ACC-1", "654321")]


def test_correct_pin_passes():
    verify_account_pin(_PinLedger(), "u1", "ACC-1", "123456")
