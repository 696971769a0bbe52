import enum

from sqlalchemy import JSON, Column, Index, Integer, Numeric, String, Text

from app.core.database import Base
from app.models.base import TimestampMixin


class PpobStatus(str, enum.Enum):
    INQUIRY = "INQUIRY"
    DEBITED = "DEBITED"
    SUBMITTED = "SUBMITTED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REVERSED = "REVERSED"


class ProductType(str, enum.Enum):
    PREPAID = "prepaid"
    PASCA = "pasca"


# Rows in these states have money taken from the user that the provider has not settled yet.
OPEN_DEBIT_STATUSES = {PpobStatus.DEBITED.value, PpobStatus.SUBMITTED.value}


class PpobTransaction(Base, TimestampMixin):
    """
    One row per provider purchase attempt, keyed by ref_id.

    status/product_type are plain strings so new states do not need an ENUM migration.
    """

    __tablename__ = "ppob_transactions"

    id = Column(Integer, primary_key=True, index=True)
    ref_id = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    account_id = Column(String(64), nullable=True)

    buyer_sku_code = Column(String(64), nullable=False)
    customer_no = Column(String(64), nullable=False)
    product_type = Column(String(16), nullable=False, default=ProductType.PREPAID.value)

    amount_nominal = Column(Numeric(14, 2), nullable=True)
    price = Column(Numeric(14, 2), nullable=True)
    status = Column(String(16), nullable=False, default=PpobStatus.INQUIRY.value)

    rc = Column(String(16), nullable=True)
    message = Column(Text, nullable=True)
    sn = Column(String(255), nullable=True)
    debit_reference = Column(String(64), nullable=True)
    reversal_reference = Column(String(64), nullable=True)

    raw_request = Column(JSON, nullable=True)
    raw_response = Column(JSON, nullable=True)


Index("ix_ppob_transactions_user_status", PpobTransaction.user_id, PpobTransaction.status)
Index("ix_ppob_transactions_status_updated", PpobTransaction.status, PpobTransaction.updated_at)
