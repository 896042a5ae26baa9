"""
Database Schemas for the Custom Print Storefront

Each Pydantic model represents a collection in MongoDB. The collection name
is the lowercase class name (Product -> "product", OrderItem -> "orderitem").
Money is kept as Decimal; database.py converts it to Decimal128 on write.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field, model_validator

OrderStatus = Literal['pending', 'confirmed', 'processing', 'shipped', 'completed', 'cancelled']
PaymentStatus = Literal['pending', 'paid', 'failed', 'refunded']


class Category(str, Enum):
    APPAREL = "Apparel"
    HOME_AND_LIVING = "Home & Living"
    WALL_ART = "Wall Art"
    ACCESSORIES = "Accessories"


# Printable products offered in the catalog (t-shirts, mugs, canvases, phone cases...)
class Product(BaseModel):
    name: str = Field(..., min_length=1, description="Public product name")
    description: str = Field("", description="Short marketing description")
    category: Category = Field(Category.APPAREL, description="Catalog category")
    base_price: Decimal = Field(..., ge=0, description="Blank product price per unit")
    print_price: Decimal = Field(..., ge=0, description="Printing surcharge per unit")
    image_url: Optional[str] = Field(None, description="Primary product image URL")
    mockup_images: List[str] = Field(default_factory=list, description="Extra mockup image URLs")
    sizes: List[str] = Field(default_factory=list, description="Offered sizes, first is the default")
    colors: List[str] = Field(default_factory=list, description="Offered colors, first is the default")
    is_active: bool = Field(True, description="Whether the product is listed")

    @model_validator(mode="after")
    def active_products_need_variants(self):
        if self.is_active and (not self.sizes or not self.colors):
            raise ValueError("Active products must offer at least one size and one color")
        return self


class ProductRecord(Product):
    """A product as read back from the catalog."""
    id: str


class ShippingAddress(BaseModel):
    address: str
    city: str
    pincode: str


# Customer details collected on the payment step
class CustomerInfo(BaseModel):
    name: str = ""
    email: Union[EmailStr, Literal[""]] = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    pincode: str = ""

    def missing_fields(self) -> List[str]:
        return [field for field, value in self.model_dump().items() if not str(value).strip()]

    def shipping_address(self) -> ShippingAddress:
        return ShippingAddress(address=self.address, city=self.city, pincode=self.pincode)


class Order(BaseModel):
    user_id: Optional[str] = Field(None, description="Owning user, None for guest checkout")
    order_number: str = Field(..., description="Human facing unique order number")
    customer_email: EmailStr
    customer_name: str
    customer_phone: Optional[str] = None
    shipping_address: ShippingAddress
    billing_address: Optional[ShippingAddress] = None
    subtotal: Decimal = Field(..., ge=0)
    shipping_cost: Decimal = Field(Decimal("0"), ge=0)
    tax_amount: Decimal = Field(Decimal("0"), ge=0)
    total_amount: Decimal = Field(..., ge=0)
    status: OrderStatus = 'pending'
    payment_status: PaymentStatus = 'pending'
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = Field(None, description="Reference from payment provider")

    @model_validator(mode="after")
    def total_adds_up(self):
        if self.total_amount != self.subtotal + self.shipping_cost + self.tax_amount:
            raise ValueError("total_amount must equal subtotal + shipping_cost + tax_amount")
        return self


class OrderRecord(Order):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderItem(BaseModel):
    order_id: str
    product_id: str
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None
    custom_image_url: Optional[str] = None
    custom_instructions: str = ""
    unit_price: Decimal = Field(..., ge=0)
    total_price: Decimal = Field(..., ge=0)
