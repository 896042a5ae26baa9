from decimal import Decimal

import mongomock
import pytest
from fastapi.testclient import TestClient

from catalog import MongoProductRepository
from checkout import CheckoutRegistry, CheckoutSession
from orders import MongoOrderRepository, OrderPlacement
from payments import HostedGateway
from schemas import CustomerInfo, Product
from storage import DesignUploader

GATEWAY_SECRET = "test_secret"


class StoredFile:
    def __init__(self, data, content_type):
        self.data = data
        self.metadata = {"contentType": content_type}

    def __iter__(self):
        yield self.data


class MemoryStorage:
    """Object storage kept in a dict; can be told to fail."""

    def __init__(self):
        self.objects = {}
        self.calls = 0
        self.fail = False

    def upload(self, path, data, content_type=None):
        self.calls += 1
        if self.fail:
            raise ConnectionError("storage offline")
        self.objects[path] = (data, content_type)

    def public_url(self, path):
        return f"https://cdn.example.com/{path}"

    def open(self, path):
        if path not in self.objects:
            return None
        return StoredFile(*self.objects[path])


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def mongo():
    return mongomock.MongoClient()["printstore_test"]


@pytest.fixture
def products(mongo):
    return MongoProductRepository(mongo)


@pytest.fixture
def orders(mongo):
    repo = MongoOrderRepository(mongo)
    repo.ensure_indexes()
    return repo


@pytest.fixture
def tshirt(products):
    return products.create(Product(
        name="Premium T-Shirt",
        description="Soft cotton tee",
        category="Apparel",
        base_price=Decimal("299"),
        print_price=Decimal("100"),
        image_url="https://images.example.com/tee.jpg",
        sizes=["S", "M", "L", "XL", "XXL"],
        colors=["White", "Black", "Navy", "Red"],
    ))


@pytest.fixture
def mug(products):
    return products.create(Product(
        name="Ceramic Mug",
        description="11oz glossy mug",
        category="Home & Living",
        base_price=Decimal("199"),
        print_price=Decimal("80"),
        image_url="https://images.example.com/mug.jpg",
        sizes=["11oz", "15oz"],
        colors=["White", "Black"],
    ))


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def gateway():
    return HostedGateway(key_id="rzp_test_key", key_secret=GATEWAY_SECRET)


@pytest.fixture
def customer():
    return CustomerInfo(
        name="Asha Rao",
        email="asha@example.com",
        phone="9876543210",
        address="12 MG Road",
        city="Bengaluru",
        pincode="560001",
    )


@pytest.fixture
def make_session(tshirt, orders, storage, gateway):
    def factory(product=None, repo=None, user=None):
        return CheckoutSession(
            product or tshirt,
            placement=OrderPlacement(repo or orders),
            uploader=DesignUploader(storage),
            gateway=gateway,
            user=user,
        )
    return factory


@pytest.fixture
def client(mongo, storage, gateway):
    import main

    main.app.dependency_overrides[main.require_db] = lambda: mongo
    main.app.dependency_overrides[main.get_storage] = lambda: storage
    main.app.dependency_overrides[main.get_gateway] = lambda: gateway
    sessions = CheckoutRegistry()
    main.app.dependency_overrides[main.get_registry] = lambda: sessions
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()
