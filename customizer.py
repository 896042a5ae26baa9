"""
Product customization state and pricing.

A Customizer holds one shopper's selection for one product: color, size,
quantity, the uploaded design and where it sits on the mockup. Placement and
scale are percentages of the mockup image used for CSS positioning.
"""
from decimal import Decimal
from typing import Dict, NamedTuple, Optional

from pydantic import BaseModel, Field

from errors import ValidationError
from schemas import Category, ProductRecord


POSITION_MIN, POSITION_MAX = 10, 90
SCALE_MIN, SCALE_MAX = 10, 50
DEFAULT_SCALE = 25


class Placement(BaseModel):
    x: int = 50
    y: int = 40


class CategoryLayout(NamedTuple):
    mockup_url: Optional[str]         # None: use the product's own image
    fixed_placement: Optional[Placement]  # None: shopper positions the design


CATEGORY_LAYOUTS: Dict[Category, CategoryLayout] = {
    Category.APPAREL: CategoryLayout(None, None),
    # mug
    Category.HOME_AND_LIVING: CategoryLayout(
        "https://images.unsplash.com/photo-1544787219-7f47ccb76574?w=500", Placement(x=50, y=45)
    ),
    # canvas
    Category.WALL_ART: CategoryLayout(
        "https://images.unsplash.com/photo-1513475382585-d06e58bcb0e0?w=500", Placement(x=50, y=50)
    ),
    # phone case
    Category.ACCESSORIES: CategoryLayout(
        "https://images.unsplash.com/photo-1592750475338-74b7b21085ab?w=500", Placement(x=50, y=35)
    ),
}

_unmapped = set(Category) - set(CATEGORY_LAYOUTS)
if _unmapped:
    raise RuntimeError(f"No layout for categories: {sorted(c.value for c in _unmapped)}")


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def price_total(base_price: Decimal, print_price: Decimal, quantity: int) -> Decimal:
    """(base + print surcharge) * quantity, in Decimal."""
    return (Decimal(base_price) + Decimal(print_price)) * quantity


class CustomizationSelection(BaseModel):
    color: Optional[str] = None
    size: Optional[str] = None
    quantity: int = Field(1, ge=1)
    design_url: Optional[str] = None
    placement: Placement = Field(default_factory=Placement)
    scale: int = DEFAULT_SCALE
    instructions: str = ""


class Customizer:
    def __init__(self, product: ProductRecord):
        self.product = product
        self.selection = CustomizationSelection(
            color=product.colors[0] if product.colors else None,
            size=product.sizes[0] if product.sizes else None,
        )

    @property
    def layout(self) -> CategoryLayout:
        return CATEGORY_LAYOUTS[Category(self.product.category)]

    def choose_color(self, color: str) -> None:
        if color not in self.product.colors:
            raise ValidationError(f"Color '{color}' is not offered for {self.product.name}")
        self.selection.color = color

    def choose_size(self, size: str) -> None:
        if size not in self.product.sizes:
            raise ValidationError(f"Size '{size}' is not offered for {self.product.name}")
        self.selection.size = size

    def adjust_quantity(self, delta: int) -> int:
        self.selection.quantity = max(1, self.selection.quantity + delta)
        return self.selection.quantity

    def set_design(self, url: str) -> None:
        self.selection.design_url = url

    def move_design(self, dx: int = 0, dy: int = 0) -> Placement:
        current = self.selection.placement
        self.selection.placement = Placement(
            x=clamp(current.x + dx, POSITION_MIN, POSITION_MAX),
            y=clamp(current.y + dy, POSITION_MIN, POSITION_MAX),
        )
        return self.selection.placement

    def resize_design(self, delta: int) -> int:
        self.selection.scale = clamp(self.selection.scale + delta, SCALE_MIN, SCALE_MAX)
        return self.selection.scale

    def set_instructions(self, text: str) -> None:
        self.selection.instructions = text

    def effective_placement(self) -> Placement:
        """Where the design is drawn; only apparel honours the stored placement."""
        return self.layout.fixed_placement or self.selection.placement

    def mockup_url(self) -> Optional[str]:
        return self.layout.mockup_url or self.product.image_url

    @property
    def unit_price(self) -> Decimal:
        return Decimal(self.product.base_price) + Decimal(self.product.print_price)

    @property
    def total(self) -> Decimal:
        return price_total(self.product.base_price, self.product.print_price, self.selection.quantity)
