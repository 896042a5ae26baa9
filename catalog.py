"""
Product catalog backed by the "product" collection.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from bson.errors import InvalidId
from bson.objectid import ObjectId

from database import create_document, encode_decimals, get_documents, to_str_id
from schemas import Product, ProductRecord

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "All"


def _object_id(product_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(product_id)
    except (InvalidId, TypeError):
        return None


class MongoProductRepository:
    collection = "product"

    def __init__(self, database):
        self.db = database

    def get(self, product_id: str) -> Optional[ProductRecord]:
        oid = _object_id(product_id)
        if oid is None:
            return None
        doc = self.db[self.collection].find_one({"_id": oid})
        return ProductRecord(**to_str_id(doc)) if doc else None

    def list(self, include_inactive: bool = False) -> List[ProductRecord]:
        filt = {} if include_inactive else {"is_active": True}
        docs = get_documents(self.collection, filt, database=self.db)
        return [ProductRecord(**to_str_id(d)) for d in docs]

    def create(self, product: Product) -> ProductRecord:
        product_id = create_document(self.collection, product, self.db)
        logger.info("Created product %s (%s)", product_id, product.name)
        return self.get(product_id)

    def update(self, product_id: str, product: Product) -> Optional[ProductRecord]:
        oid = _object_id(product_id)
        if oid is None:
            return None
        fields = encode_decimals(product.model_dump(mode="python"))
        fields["updated_at"] = datetime.now(timezone.utc)
        result = self.db[self.collection].update_one({"_id": oid}, {"$set": fields})
        if result.matched_count == 0:
            return None
        return self.get(product_id)

    def delete(self, product_id: str) -> bool:
        oid = _object_id(product_id)
        if oid is None:
            return False
        return self.db[self.collection].delete_one({"_id": oid}).deleted_count == 1

    def count(self) -> int:
        return self.db[self.collection].count_documents({})


def filter_products(products: Iterable[ProductRecord], search: str = "", category: Optional[str] = None):
    """Case-insensitive name/description search plus an optional category ('All' matches everything)."""
    term = (search or "").strip().lower()
    matches = []
    for product in products:
        if category and category != ALL_CATEGORIES and product.category.value != category:
            continue
        if term and term not in product.name.lower() and term not in product.description.lower():
            continue
        matches.append(product)
    return matches


def default_catalog() -> List[Product]:
    return [
        Product(
            name="Premium T-Shirt",
            description="Soft combed cotton tee for DTG prints",
            category="Apparel",
            base_price=Decimal("299"),
            print_price=Decimal("100"),
            image_url="https://images.unsplash.com/photo-1521572163474-6864f9cf17ab?w=500",
            sizes=["S", "M", "L", "XL", "XXL"],
            colors=["White", "Black", "Navy", "Red"],
        ),
        Product(
            name="Ceramic Mug",
            description="11oz glossy mug, dishwasher safe",
            category="Home & Living",
            base_price=Decimal("199"),
            print_price=Decimal("80"),
            image_url="https://images.unsplash.com/photo-1544787219-7f47ccb76574?w=500",
            sizes=["11oz", "15oz"],
            colors=["White", "Black"],
        ),
        Product(
            name="Canvas Print",
            description="Gallery wrapped canvas for your artwork",
            category="Wall Art",
            base_price=Decimal("899"),
            print_price=Decimal("250"),
            image_url="https://images.unsplash.com/photo-1513475382585-d06e58bcb0e0?w=500",
            sizes=["12x16", "16x20", "24x36"],
            colors=["Natural"],
        ),
        Product(
            name="Phone Case",
            description="Slim hard case with full wrap print",
            category="Accessories",
            base_price=Decimal("249"),
            print_price=Decimal("100"),
            image_url="https://images.unsplash.com/photo-1592750475338-74b7b21085ab?w=500",
            sizes=["iPhone 15", "iPhone 15 Pro", "Galaxy S24"],
            colors=["Clear", "Black"],
        ),
    ]


def seed_products(repo: MongoProductRepository) -> int:
    """Insert the default catalog when the collection is empty; returns how many were added."""
    if repo.count() > 0:
        return 0
    defaults = default_catalog()
    for product in defaults:
        repo.create(product)
    return len(defaults)
