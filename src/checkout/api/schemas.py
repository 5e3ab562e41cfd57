"""Pydantic request/response schemas for the Checkout API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class CartItemSchema(BaseModel):
    product_id: str
    variant_id: str | None = None
    name: str = ""
    quantity: int = Field(ge=0)
    base_price: float = Field(ge=0)
    discount_percentage: float = Field(ge=0, le=100, default=0)
    selected: bool = True


class CardSchema(BaseModel):
    number: str
    expiry: str = Field(description="MM/YY")
    cvv: str


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class StartCheckoutRequest(BaseModel):
    session_key: str
    items: list[CartItemSchema] | None = None  # Omitted: read the shopper's cart from the backend
    customer_id: str | None = None
    email: str | None = None
    name: str | None = None
    phone: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "session_key": "chk-7f3a",
                    "items": [
                        {
                            "product_id": "prod-001",
                            "variant_id": "var-001",
                            "name": "Linen shirt",
                            "quantity": 2,
                            "base_price": 5000,
                            "discount_percentage": 10,
                        }
                    ],
                    "customer_id": "cust-001",
                    "email": "ada@example.com",
                    "name": "Ada Obi",
                    "phone": "+234 803 000 0000",
                }
            ]
        }
    }


class ShippingRequest(BaseModel):
    address_line: str
    city: str
    shipping_method: str = "standard"
    payment_method: str = "paystack"
    recipient_name: str | None = None
    recipient_phone: str | None = None
    gift_message: str | None = Field(default=None, max_length=200)


class PayRequest(BaseModel):
    card: CardSchema | None = None


class GatewayCallbackRequest(BaseModel):
    reference: str = Field(min_length=1)  # Payment reference the widget was opened with


class PaymentMethodRequest(BaseModel):
    payment_method: str


class AbandonRequest(BaseModel):
    confirmed: bool = False


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class SessionResponse(BaseModel):
    session_key: str
    status: str
    order_id: str | None = None
    confirmed_order_id: str | None = None
    payment_method: str | None = None
    shipping_method: str | None = None
    payment_reference: str | None = None
    payment_amount: float | None = None
    pricing: dict | None = None
    message: str | None = None
    busy: bool = False
    requires_leave_confirmation: bool = False


class PaymentResponse(BaseModel):
    session: SessionResponse
    widget: dict | None = None  # Browser-facing widget configuration


class BankTransferResponse(BaseModel):
    reference: str
    amount: float
    bank_details: dict
    expires_at: str | None = None
    order_id: str | None = None
    status: str | None = None
