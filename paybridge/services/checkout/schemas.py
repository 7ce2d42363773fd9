"""Cart snapshot and checkout request/response schemas.

Amounts on the cart are decimals in major units as the shop reports them;
everything sent to the gateway is integer minor units.
"""

from decimal import Decimal

from pydantic import BaseModel, Field


class Address(BaseModel):
    firstname: str = ""
    lastname: str = ""
    address1: str = ""
    address2: str = ""
    city: str = ""
    postcode: str = ""
    country: str = ""
    phone: str | None = None
    phone_mobile: str | None = None


class CartLine(BaseModel):
    """One product row; `price` is pretax, `price_wt` includes tax."""

    reference: str
    name: str
    quantity: int = Field(gt=0)
    price: Decimal
    price_wt: Decimal
    rate: Decimal = Decimal("0")


class ShippingLine(BaseModel):
    carrier_reference: str
    carrier_name: str
    cost: Decimal
    cost_tax_exc: Decimal
    tax_rate: Decimal = Decimal("0")


class Discount(BaseModel):
    name: str = ""
    value_tax_exc: Decimal


class Cart(BaseModel):
    """Everything checkout needs from the shop, passed explicitly per call."""

    cart_id: str = Field(min_length=1)
    secure_key: str = ""
    currency: str = Field(min_length=3, max_length=3)
    order_total: Decimal
    customer_email: str = ""
    invoice_address: Address = Field(default_factory=Address)
    delivery_address: Address = Field(default_factory=Address)
    products: list[CartLine] = Field(default_factory=list)
    shipping: ShippingLine | None = None
    discounts: list[Discount] = Field(default_factory=list)
    total_discounts: Decimal = Decimal("0")
    total_discounts_tax_exc: Decimal = Decimal("0")


class LineItem(BaseModel):
    """Gateway product row. `type`: 1 product, 2 shipping, 4 discount."""

    id: str
    title: str
    count: int
    pretax_price: int
    tax: str
    price: int
    type: int


class PaymentCreateRequest(BaseModel):
    """Payload accepted by `POST /payment`."""

    cart: Cart
    selected: str | None = None
    lang: str | None = None


class PaymentCreateResponse(BaseModel):
    redirect_url: str


class PaymentOptionsRequest(BaseModel):
    cart: Cart
