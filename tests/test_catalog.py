from decimal import Decimal

import pydantic
import pytest

from catalog import default_catalog, filter_products, seed_products
from schemas import Category, Product


def test_active_products_need_sizes_and_colors():
    with pytest.raises(pydantic.ValidationError):
        Product(name="Blank", base_price=Decimal("1"), print_price=Decimal("1"), sizes=[], colors=["White"])
    draft = Product(name="Draft", base_price=Decimal("1"), print_price=Decimal("1"), is_active=False)
    assert draft.sizes == []


def test_prices_cannot_be_negative():
    with pytest.raises(pydantic.ValidationError):
        Product(name="Tee", base_price=Decimal("-1"), print_price=Decimal("1"), sizes=["M"], colors=["White"])


def test_repository_round_trip(products, tshirt):
    fetched = products.get(tshirt.id)
    assert fetched.name == "Premium T-Shirt"
    assert fetched.category == Category.APPAREL
    assert fetched.base_price == Decimal("299")
    assert fetched.sizes == ["S", "M", "L", "XL", "XXL"]
    assert products.get("bogus") is None
    assert products.get("0" * 24) is None


def test_update_and_delete(products, tshirt):
    changed = tshirt.model_copy(update={"print_price": Decimal("120"), "is_active": False})
    updated = products.update(tshirt.id, Product(**changed.model_dump(exclude={"id"})))
    assert updated.print_price == Decimal("120")
    assert products.list() == []
    assert len(products.list(include_inactive=True)) == 1

    assert products.delete(tshirt.id) is True
    assert products.delete(tshirt.id) is False
    assert products.update(tshirt.id, Product(**changed.model_dump(exclude={"id"}))) is None


def test_filter_by_category_and_search(tshirt, mug, products):
    catalog = products.list()
    assert filter_products(catalog, category="Home & Living") == [mug]
    assert len(filter_products(catalog, category="All")) == 2
    assert filter_products(catalog, search="MUG") == [mug]
    assert filter_products(catalog, search="cotton") == [tshirt]
    assert filter_products(catalog, search="mug", category="Apparel") == []
    assert len(filter_products(catalog)) == 2


def test_seed_only_fills_an_empty_catalog(products):
    assert seed_products(products) == len(default_catalog())
    assert seed_products(products) == 0
    categories = {p.category for p in products.list()}
    assert categories == set(Category)
