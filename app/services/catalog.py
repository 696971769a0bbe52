from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.models import PpobProduct
from app.utils.cache import get_cached, set_cached


PRODUCTS_CACHE_KEY = "digiflazz:products"
PRODUCTS_CACHE_TTL_SECONDS = 60

_PRODUCT_FIELDS = (
    "id",
    "product_name",
    "category",
    "brand",
    "type",
    "seller_name",
    "price",
    "buyer_sku_code",
    "buyer_product_status",
    "seller_product_status",
    "unlimited_stock",
    "stock",
    "multi",
    "start_cut_off",
    "end_cut_off",
    "description",
    "nominal",
    "created_at",
    "updated_at",
)


def product_to_dict(product: PpobProduct) -> dict:
    return {name: getattr(product, name, None) for name in _PRODUCT_FIELDS}


class ProductCatalog:
    def __init__(self, db: Session):
        self.db = db

    def get(self, buyer_sku_code: str) -> PpobProduct:
        sku = str(buyer_sku_code or "").strip()
        product = self.db.query(PpobProduct).filter(PpobProduct.buyer_sku_code == sku).first() if sku else None
        if not product:
            raise NotFoundError("Product not found")
        return product

    def list_products(self) -> list[dict]:
        cached = get_cached(PRODUCTS_CACHE_KEY)
        if cached is not None:
            return cached
        rows = (
            self.db.query(PpobProduct)
            .order_by(PpobProduct.category, PpobProduct.brand, PpobProduct.price)
            .all()
        )
        products = [product_to_dict(row) for row in rows]
        set_cached(PRODUCTS_CACHE_KEY, products, ttl_seconds=PRODUCTS_CACHE_TTL_SECONDS)
        return products
