from app.models.ppob_transaction import PpobTransaction, PpobStatus, ProductType, OPEN_DEBIT_STATUSES
from app.models.ppob_product import PpobProduct
from app.models.device_token import DeviceToken
from app.models.api_log import ApiLog

__all__ = [
    "PpobTransaction",
    "PpobStatus",
    "ProductType",
    "OPEN_DEBIT_STATUSES",
    "PpobProduct",
    "DeviceToken",
    "ApiLog",
]
