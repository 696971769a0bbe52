from app.core.errors import AuthorizationError, ValidationError
from app.services.ledger import LedgerGateway


PIN_LENGTH = 6


def is_well_formed_pin(pin: str | None) -> bool:
    # str.isdigit() also accepts non-ASCII digits such as "١٢٣٤٥٦".
    raw = pin or ""
    return len(raw) == PIN_LENGTH and raw.isascii() and raw.isdigit()


def verify_account_pin(ledger: LedgerGateway, user_id: str, account_id: str, pin: str | None) -> None:
    if not is_well_formed_pin(pin):
        raise ValidationError("pin must be 6 digits")
    if not ledger.verify_pin(user_id, account_id, pin):
        raise AuthorizationError("invalid PIN")
