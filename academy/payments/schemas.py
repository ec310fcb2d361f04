# module academy.payments.schemas
"""Corps de requête / réponses de l'API paiements (pydantic)."""
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field, model_validator

PaymentMethod = Literal["stripe", "paypal"]


class CartItem(BaseModel):
    course_id: Optional[str] = None
    product_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    # Indication de prix du client, utilisée seulement si le catalogue est indisponible
    price: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def one_reference(self):
        if bool(self.course_id) == bool(self.product_id):
            raise ValueError("course_id ou product_id requis (un seul)")
        return self


class BillingAddress(BaseModel):
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    country: str = Field(min_length=2)
    zip_code: str = Field(min_length=1)
    state: Optional[str] = None
    company: Optional[str] = None
    tax_id: Optional[str] = None


class CheckoutRequest(BaseModel):
    items: List[CartItem] = Field(min_length=1)
    payment_method: PaymentMethod = "stripe"
    coupon_code: Optional[str] = None
    billing_address: Optional[BillingAddress] = None

    def items_payload(self) -> List[Dict[str, Any]]:
        return [it.model_dump() for it in self.items]

    def billing_payload(self) -> Optional[Dict[str, Any]]:
        return self.billing_address.model_dump() if self.billing_address else None


class GuestCheckoutRequest(CheckoutRequest):
    email: EmailStr
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: Optional[str] = None


class GuestVerifyRequest(BaseModel):
    email: EmailStr


class RefundRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
    amount: Optional[float] = Field(default=None, gt=0)


class CouponPreviewRequest(BaseModel):
    code: str = Field(min_length=1)
    items: List[CartItem] = Field(min_length=1)


class CheckoutResponse(BaseModel):
    provider: str
    session_id: str
    url: Optional[str] = None
    order_id: str
    order_number: Optional[str] = None
    total: Optional[float] = None
    free: bool = False
    status: Optional[str] = None


class GuestCheckoutResponse(CheckoutResponse):
    is_new_user: bool
    user_id: str


class PaymentStatusResponse(BaseModel):
    success: bool
    status: Optional[str] = None
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    total: Optional[float] = None
    payment_status: Optional[str] = None


class GuestVerifyResponse(PaymentStatusResponse):
    is_new_user: bool
    message: str


class WebhookAck(BaseModel):
    received: bool = True
    handled: Optional[bool] = None
