import enum


class PaymentError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PaymentError):
    status_code = 400


class AuthorizationError(PaymentError):
    status_code = 401


class NotFoundError(PaymentError):
    status_code = 404


class InsufficientBalanceError(PaymentError):
    status_code = 400


class ExternalServiceError(PaymentError):
    """Provider, push backend or OAuth failure. `raw` keeps the response body for replay."""

    status_code = 502

    def __init__(self, message: str, *, raw: str | None = None, upstream_status: int | None = None):
        super().__init__(message)
        self.raw = raw
        self.upstream_status = upstream_status


class BusinessFailure(PaymentError):
    """The provider explicitly reported the purchase as failed."""

    status_code = 502

    def __init__(self, message: str, *, rc: str | None = None, ref_id: str | None = None):
        super().__init__(message)
        self.rc = rc
        self.ref_id = ref_id


class LedgerErrorCode(str, enum.Enum):
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    ACCOUNT_NOT_OWNED = "ACCOUNT_NOT_OWNED"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    AMOUNT_INVALID = "AMOUNT_INVALID"
    UNKNOWN = "UNKNOWN"


class LedgerError(PaymentError):
    def __init__(self, code: LedgerErrorCode, message: str | None = None):
        super().__init__(message or code.value.lower().replace("_", " "))
        self.code = code

    @property
    def status_code(self) -> int:
        return _LEDGER_STATUS[self.code]

    def as_payment_error(self) -> PaymentError:
        if self.code == LedgerErrorCode.INSUFFICIENT_FUNDS:
            return InsufficientBalanceError("Insufficient balance")
        if self.code == LedgerErrorCode.ACCOUNT_NOT_OWNED:
            return AuthorizationError("Account not owned")
        if self.code == LedgerErrorCode.ACCOUNT_NOT_FOUND:
            return NotFoundError("Account not found")
        if self.code == LedgerErrorCode.AMOUNT_INVALID:
            return ValidationError("Amount invalid")
        return ExternalServiceError(f"Ledger error: {self.message}")


_LEDGER_STATUS = {
    LedgerErrorCode.INSUFFICIENT_FUNDS: 400,
    LedgerErrorCode.ACCOUNT_NOT_OWNED: 403,
    LedgerErrorCode.ACCOUNT_NOT_FOUND: 404,
    LedgerErrorCode.AMOUNT_INVALID: 400,
    LedgerErrorCode.UNKNOWN: 500,
}
