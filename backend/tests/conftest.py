import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(_TMP, "default.db"))
os.environ.setdefault("LOCAL_CART_DIR", os.path.join(_TMP, "cart_cache"))
os.environ.setdefault("DEVICE_ID", "device_test")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402

from storefront.db import create_db_engine, init_db, make_session_factory  # noqa: E402
from storefront.db.seed import seed_catalog  # noqa: E402
from storefront.schemas.cart import ProductRef  # noqa: E402
from storefront.services.cart_service import CartService  # noqa: E402
from storefront.services.cart_sync import CartSyncEngine  # noqa: E402
from storefront.services.local_cart_cache import LocalCartCache  # noqa: E402

CATALOG = [
    {
        "id": "hoodie-1",
        "name": "Oversized Hoodie",
        "price_cents": 1000,
        "variants": [{"size": "M", "color": "black", "quantity": 10}],
    },
    {
        "id": "tee-1",
        "name": "Boxy Tee",
        "price_cents": 300,
        "variants": [
            {"size": "S", "color": "white", "quantity": 1},
            {"size": "M", "color": "white", "quantity": 5},
        ],
    },
    {
        "id": "cap-1",
        "name": "Cap",
        "price_cents": 150,
        "variants": [{"size": "OS", "color": "red", "quantity": 5}],
    },
    {
        "id": "jacket-old",
        "name": "Retired Jacket",
        "price_cents": 2000,
        "active": False,
        "variants": [{"size": "L", "color": "olive", "quantity": 3}],
    },
]

PRICES = {p["id"]: p["price_cents"] for p in CATALOG}
NAMES = {p["id"]: p["name"] for p in CATALOG}


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def ref(product_id, price=None):
    return ProductRef(
        product_id=product_id,
        name=NAMES.get(product_id),
        price=PRICES[product_id] if price is None else price,
    )


@pytest.fixture
def engine(tmp_path):
    eng = create_db_engine("sqlite:///" + str(tmp_path / "test.db"))
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    factory = make_session_factory(engine)
    with factory() as db:
        seed_catalog(db, CATALOG)
        db.commit()
    return factory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path):
    return LocalCartCache(str(tmp_path / "device_a"))


@pytest.fixture
def cart_service(cache, clock):
    return CartService(cache, clock)


@pytest.fixture
def sync_engine(cache, session_factory, clock):
    return CartSyncEngine(cache, session_factory, "device_a", tolerance_seconds=5, clock=clock)
