from sqlalchemy import Boolean, Column, Index, Integer, String, Text

from app.core.database import Base
from app.models.base import TimestampMixin


EMONEY_LABEL = "E-MONEY"


class PpobProduct(Base, TimestampMixin):
    __tablename__ = "digiflazz_products"

    id = Column(Integer, primary_key=True, index=True)
    product_name = Column(String(255), nullable=False)
    category = Column(String(64), nullable=False)
    brand = Column(String(64), nullable=False)
    type = Column(String(64), nullable=False)
    seller_name = Column(String(128), nullable=False, default="")
    price = Column(Integer, nullable=False)
    buyer_sku_code = Column(String(64), nullable=False, unique=True, index=True)
    buyer_product_status = Column(Boolean, nullable=False, default=True)
    seller_product_status = Column(Boolean, nullable=False, default=True)
    unlimited_stock = Column(Boolean, nullable=False, default=True)
    stock = Column(Integer, nullable=True)
    multi = Column(Boolean, nullable=True)
    start_cut_off = Column(String(16), nullable=True)
    end_cut_off = Column(String(16), nullable=True)
    description = Column(Text, nullable=True)
    nominal = Column(Integer, nullable=True)

    @property
    def is_emoney(self) -> bool:
        labels = (self.category, self.brand, self.type)
        return any(str(label or "").strip().upper() == EMONEY_LABEL for label in labels)


Index("ix_digiflazz_products_category_brand", PpobProduct.category, PpobProduct.brand)
