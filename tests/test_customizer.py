from decimal import Decimal

import pytest

from customizer import (
    CATEGORY_LAYOUTS,
    POSITION_MAX,
    POSITION_MIN,
    SCALE_MAX,
    SCALE_MIN,
    Customizer,
    Placement,
    price_total,
)
from errors import ValidationError
from schemas import Category, ProductRecord


def make_product(category="Apparel", base="299", surcharge="100"):
    return ProductRecord(
        id="p1",
        name="Premium T-Shirt",
        category=category,
        base_price=Decimal(base),
        print_price=Decimal(surcharge),
        image_url="https://images.example.com/tee.jpg",
        sizes=["S", "M", "L"],
        colors=["White", "Black"],
    )


def test_defaults_to_first_color_and_size():
    c = Customizer(make_product())
    assert c.selection.color == "White"
    assert c.selection.size == "S"
    assert c.selection.quantity == 1
    assert c.selection.design_url is None
    assert c.selection.placement == Placement(x=50, y=40)
    assert c.selection.scale == 25


def test_rejects_colors_and_sizes_the_product_does_not_offer():
    c = Customizer(make_product())
    c.choose_color("Black")
    c.choose_size("L")
    with pytest.raises(ValidationError):
        c.choose_color("Purple")
    with pytest.raises(ValidationError):
        c.choose_size("XXXL")
    assert c.selection.color == "Black"
    assert c.selection.size == "L"


def test_quantity_never_drops_below_one():
    c = Customizer(make_product())
    for delta in [-1, -5, 3, -2, -100, 1, 0, -1, 7, -7, -7]:
        c.adjust_quantity(delta)
        assert c.selection.quantity >= 1
    assert c.selection.quantity == 1


def test_placement_and_scale_stay_in_bounds():
    c = Customizer(make_product())
    steps = [(5, 0), (0, -5), (100, 100), (-5, 5), (-250, -250), (15, 80), (0, 3)]
    for dx, dy in steps:
        c.move_design(dx, dy)
        c.resize_design(dx)
        p = c.selection.placement
        assert POSITION_MIN <= p.x <= POSITION_MAX
        assert POSITION_MIN <= p.y <= POSITION_MAX
        assert SCALE_MIN <= c.selection.scale <= SCALE_MAX


def test_axes_are_clamped_independently():
    c = Customizer(make_product())
    c.move_design(dx=500, dy=-5)
    assert c.selection.placement == Placement(x=90, y=35)
    c.resize_design(-500)
    assert c.selection.scale == 10
    c.resize_design(500)
    assert c.selection.scale == 50


@pytest.mark.parametrize("base,surcharge,qty,expected", [
    ("299", "100", 1, "399"),
    ("299", "100", 2, "798"),
    ("19.99", "0.01", 3, "60.00"),
    ("0.10", "0.20", 1000, "300.00"),
])
def test_price_total(base, surcharge, qty, expected):
    assert price_total(Decimal(base), Decimal(surcharge), qty) == Decimal(expected)


def test_total_follows_the_current_quantity():
    c = Customizer(make_product())
    assert c.total == Decimal("399")
    c.adjust_quantity(1)
    assert c.total == Decimal("798")
    c.adjust_quantity(-10)
    assert c.total == Decimal("399")
    assert c.unit_price == Decimal("399")


def test_every_category_has_a_layout():
    assert set(CATEGORY_LAYOUTS) == set(Category)


@pytest.mark.parametrize("category,expected", [
    ("Home & Living", Placement(x=50, y=45)),
    ("Accessories", Placement(x=50, y=35)),
    ("Wall Art", Placement(x=50, y=50)),
])
def test_fixed_placement_ignores_stored_override(category, expected):
    c = Customizer(make_product(category=category))
    c.move_design(dx=20, dy=20)
    assert c.effective_placement() == expected
    assert c.mockup_url() != "https://images.example.com/tee.jpg"


def test_apparel_uses_stored_placement_and_product_image():
    c = Customizer(make_product())
    c.move_design(dx=-10, dy=10)
    assert c.effective_placement() == Placement(x=40, y=50)
    assert c.mockup_url() == "https://images.example.com/tee.jpg"


def test_instructions_are_stored_verbatim():
    c = Customizer(make_product())
    text = "Print on the back, " * 200
    c.set_instructions(text)
    assert c.selection.instructions == text
