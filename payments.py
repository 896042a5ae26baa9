"""
Payment methods.

The hosted gateway (Razorpay Checkout) runs entirely in the shopper's browser:
the API hands out the widget configuration, the browser opens the hosted UI
and forwards whichever callback fired (success, payment.failed or dismiss).
`HostedGateway.resolve` turns that payload into exactly one PaymentResult.
Cash on delivery settles immediately with a pending payment.
"""
import hashlib
import hmac
import logging
import os
import time
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from errors import PaymentProviderError
from schemas import CustomerInfo

logger = logging.getLogger(__name__)

CHECKOUT_SCRIPT_URL = "https://checkout.razorpay.com/v1/checkout.js"


class PaymentMethod(str, Enum):
    GATEWAY = "razorpay"
    COD = "cod"


# Payment outcomes, one per payment attempt
class PaymentSucceeded(BaseModel):
    outcome: Literal["success"] = "success"
    method: PaymentMethod
    payment_id: str
    gateway_order_id: Optional[str] = None
    signature: Optional[str] = None
    status: Literal["paid", "pending"] = "paid"


class PaymentFailed(BaseModel):
    outcome: Literal["failure"] = "failure"
    description: str = "Payment failed"
    code: Optional[str] = None


class PaymentCancelled(BaseModel):
    outcome: Literal["cancelled"] = "cancelled"


PaymentResult = Annotated[
    Union[PaymentSucceeded, PaymentFailed, PaymentCancelled],
    Field(discriminator="outcome"),
]


class GatewayCallback(BaseModel):
    """Callback payload forwarded by the browser from the hosted widget."""
    event: Literal["success", "failure", "dismiss"]
    razorpay_payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    error_code: Optional[str] = None
    error_description: Optional[str] = None


class CheckoutWidget(BaseModel):
    script_url: str
    key: str
    amount: int = Field(..., ge=0, description="Amount in minor currency units")
    currency: str
    name: str
    description: str = "Custom Print Order"
    order_id: str = ""
    prefill: dict
    notes: dict


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def sign(order_id: str, payment_id: str, secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class HostedGateway:
    method = PaymentMethod.GATEWAY

    def __init__(
        self,
        key_id: Optional[str],
        key_secret: Optional[str] = None,
        currency: str = "INR",
        merchant_name: str = "Printy Shopsee",
        script_url: str = CHECKOUT_SCRIPT_URL,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.currency = currency
        self.merchant_name = merchant_name
        self.script_url = script_url

    @classmethod
    def from_env(cls) -> "HostedGateway":
        return cls(
            key_id=os.getenv("RAZORPAY_KEY_ID"),
            key_secret=os.getenv("RAZORPAY_KEY_SECRET"),
            currency=os.getenv("PAYMENT_CURRENCY", "INR"),
            merchant_name=os.getenv("STORE_NAME", "Printy Shopsee"),
        )

    def checkout_widget(self, amount: Decimal, customer: CustomerInfo, items_count: int = 1) -> CheckoutWidget:
        if not self.key_id:
            raise PaymentProviderError("Failed to load payment gateway")
        return CheckoutWidget(
            script_url=self.script_url,
            key=self.key_id,
            amount=to_minor_units(amount),
            currency=self.currency,
            name=self.merchant_name,
            prefill={"name": customer.name, "email": customer.email, "contact": customer.phone},
            notes={"order_type": "custom_print", "items_count": items_count},
        )

    def resolve(self, callback: GatewayCallback) -> Union[PaymentSucceeded, PaymentFailed, PaymentCancelled]:
        if callback.event == "dismiss":
            return PaymentCancelled()
        if callback.event == "failure":
            return PaymentFailed(
                description=callback.error_description or "Payment failed",
                code=callback.error_code,
            )

        if not callback.razorpay_payment_id:
            return PaymentFailed(description="Gateway reported success without a payment id")
        if self.key_secret:
            expected = sign(callback.razorpay_order_id or "", callback.razorpay_payment_id, self.key_secret)
            if not hmac.compare_digest(expected, callback.razorpay_signature or ""):
                logger.warning("Signature mismatch for payment %s", callback.razorpay_payment_id)
                return PaymentFailed(description="Payment signature verification failed", code="BAD_SIGNATURE")
        else:
            logger.warning("RAZORPAY_KEY_SECRET not set, accepting payment %s unverified",
                           callback.razorpay_payment_id)
        return PaymentSucceeded(
            method=PaymentMethod.GATEWAY,
            payment_id=callback.razorpay_payment_id,
            gateway_order_id=callback.razorpay_order_id,
            signature=callback.razorpay_signature,
            status="paid",
        )


class DeferredPayment:
    """Cash on delivery."""
    method = PaymentMethod.COD

    def settle(self) -> PaymentSucceeded:
        return PaymentSucceeded(
            method=PaymentMethod.COD,
            payment_id=f"COD_{int(time.time() * 1000)}",
            status="pending",
        )
