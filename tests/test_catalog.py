import pytest

from app.core.errors import NotFoundError
from app.models import PpobProduct
from app.services.catalog import PRODUCTS_CACHE_TTL_SECONDS, ProductCatalog
from app.utils import cache


class _StubQuery:
    def __init__(self, rows):
        self._rows = rows

    def filter(self, *args, **kwargs):
        return self

    def order_by(self, *args, **kwargs):
        return self

    def first(self):
        return self._rows[0] if self._rows else None

    def all(self):
        return list(self._rows)


class _StubSession:
    def __init__(self, rows):
        self.rows = rows
        self.queries = 0

    def query(self, *args, **kwargs):
        self.queries += 1
        return _StubQuery(self.rows)


@pytest.fixture(autouse=True)
def _fresh_cache(monkeypatch):
    monkeypatch.setattr(cache, "_cache", {})


def _product(**overrides):
    values = {"product_name": "XL 10K", "category": "Data", "brand": "XL", "type": "Umum", "price": 10500,
              "buyer_sku_code": "xld10"}
    values.update(overrides)
    return PpobProduct(**values)


def test_emoney_detection_is_case_insensitive():
    assert _product(category="e-money").is_emoney
    assert _product(brand="E-Money").is_emoney
    assert _product(type="E-MONEY").is_emoney
    assert not _product().is_emoney


def test_get_unknown_sku_is_not_found():
    with pytest.raises(NotFoundError):
        ProductCatalog(_StubSession([])).get("nope")


def test_get_blank_sku_skips_query():
    session = _StubSession([_product()])
    with pytest.raises(NotFoundError):
        ProductCatalog(session).get("  ")
    assert session.queries == 0


def test_list_products_is_cached():
    session = _StubSession([_product()])
    catalog = ProductCatalog(session)

    first = catalog.list_products()
    second = catalog.list_products()

    assert first == second
    assert first[0]["buyer_sku_code"] == "xld10"
    assert session.queries == 1


def test_list_products_reloads_after_ttl(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(cache, "_clock", lambda: now[0])
    session = _StubSession([_product()])
    catalog = ProductCatalog(session)

    catalog.list_products()
    now[0] += PRODUCTS_CACHE_TTL_SECONDS - 1
    catalog.list_products()
    assert session.queries == 1

    now[0] += 1
    catalog.list_products()
    assert session.queries == 2


def test_cache_miss_returns_default_and_zero_ttl_evicts():
    cache.set_cached("k", [])
    assert cache.get_cached("k", "miss") == []

    cache.set_cached("k", ["stale"], ttl_seconds=0)
    assert cache.get_cached("k", "miss") == "miss"
