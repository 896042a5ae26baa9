"""
Checkout sessions.

A CheckoutSession carries one shopper from customizing a product to a stored
order:

    customizing -> awaiting_payment -> payment_in_flight -> fulfilled
                                                          -> payment_failed     (retry)
                                                          -> payment_cancelled  (retry)
                                                          -> order_persistence_failed

Only one payment attempt can be in flight, and each attempt consumes exactly
one outcome. Once a payment settled successfully the session never starts a
new payment: if the order cannot be written it ends in
order_persistence_failed and the shopper is told to contact support.

Sessions are held in process memory by CheckoutRegistry.
"""
import logging
import uuid
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from customizer import CustomizationSelection, Customizer, Placement
from errors import NotFound, PersistenceError, StateConflict, ValidationError
from orders import OrderPlacement
from payments import (
    CheckoutWidget,
    DeferredPayment,
    HostedGateway,
    PaymentCancelled,
    PaymentFailed,
    PaymentMethod,
    PaymentSucceeded,
)
from schemas import CustomerInfo, ProductRecord
from storage import DesignUploader

logger = logging.getLogger(__name__)

SUPPORT_MESSAGE = (
    "Your payment was received but we could not save your order. "
    "Please contact support with your payment reference."
)


class CheckoutState(str, Enum):
    CUSTOMIZING = "customizing"
    AWAITING_PAYMENT = "awaiting_payment"
    PAYMENT_IN_FLIGHT = "payment_in_flight"
    FULFILLED = "fulfilled"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_CANCELLED = "payment_cancelled"
    ORDER_PERSISTENCE_FAILED = "order_persistence_failed"


PAYABLE_STATES = {
    CheckoutState.AWAITING_PAYMENT,
    CheckoutState.PAYMENT_FAILED,
    CheckoutState.PAYMENT_CANCELLED,
}
EDITABLE_STATES = PAYABLE_STATES | {CheckoutState.CUSTOMIZING}
TERMINAL_STATES = {CheckoutState.FULFILLED, CheckoutState.ORDER_PERSISTENCE_FAILED}


class CurrentUser(BaseModel):
    """Identity supplied by the upstream auth provider; id is None for guests."""
    id: Optional[str] = None
    is_admin: bool = False


class SelectionChange(BaseModel):
    color: Optional[str] = None
    size: Optional[str] = None
    quantity_delta: int = 0
    move_x: int = 0
    move_y: int = 0
    scale_delta: int = 0
    instructions: Optional[str] = None


class SessionView(BaseModel):
    id: str
    state: CheckoutState
    product_id: str
    selection: CustomizationSelection
    placement: Placement
    mockup_url: Optional[str] = None
    unit_price: Decimal
    total: Decimal
    design_uploading: bool
    customer: CustomerInfo
    payment_method: Optional[PaymentMethod] = None
    widget: Optional[CheckoutWidget] = None
    message: Optional[str] = None
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    payment_reference: Optional[str] = None


class CheckoutSession:
    def __init__(
        self,
        product: ProductRecord,
        placement: OrderPlacement,
        uploader: DesignUploader,
        gateway: HostedGateway,
        deferred: Optional[DeferredPayment] = None,
        user: Optional[CurrentUser] = None,
        session_id: Optional[str] = None,
    ):
        self.id = session_id or uuid.uuid4().hex
        self.customizer = Customizer(product)
        self.placement = placement
        self.uploader = uploader
        self.gateway = gateway
        self.deferred = deferred or DeferredPayment()
        self.user = user or CurrentUser()

        self.state = CheckoutState.CUSTOMIZING
        self.customer = CustomerInfo()
        self.payment_method: Optional[PaymentMethod] = None
        self.widget: Optional[CheckoutWidget] = None
        self.design_uploading = False
        self.message: Optional[str] = None
        self.order_id: Optional[str] = None
        self.order_number: Optional[str] = None
        self.payment_reference: Optional[str] = None
        self._outcome_taken = False

    @property
    def total(self) -> Decimal:
        return self.customizer.total

    def _move_to(self, state: CheckoutState) -> None:
        logger.info("Checkout %s: %s -> %s", self.id, self.state.value, state.value)
        self.state = state

    def _require_editable(self) -> None:
        if self.state not in EDITABLE_STATES:
            raise StateConflict(f"Selection cannot change while checkout is {self.state.value}")

    # Customization

    def update_selection(self, change: SelectionChange) -> CustomizationSelection:
        self._require_editable()
        before = self.customizer.selection.model_copy(deep=True)
        try:
            if change.color is not None:
                self.customizer.choose_color(change.color)
            if change.size is not None:
                self.customizer.choose_size(change.size)
        except ValidationError:
            self.customizer.selection = before
            raise
        if change.quantity_delta:
            self.customizer.adjust_quantity(change.quantity_delta)
        if change.move_x or change.move_y:
            self.customizer.move_design(change.move_x, change.move_y)
        if change.scale_delta:
            self.customizer.resize_design(change.scale_delta)
        if change.instructions is not None:
            self.customizer.set_instructions(change.instructions)
        return self.customizer.selection

    async def upload_design(self, filename: str, content_type: Optional[str], data: bytes) -> str:
        self._require_editable()
        if self.design_uploading:
            raise StateConflict("An upload is already in progress")
        self.design_uploading = True
        try:
            url = await self.uploader.upload(filename, content_type, data)
        finally:
            self.design_uploading = False
        # the session may have moved on while the file was being stored
        if self.state not in EDITABLE_STATES:
            logger.warning("Checkout %s: discarding design %s, checkout is %s", self.id, url, self.state.value)
            raise StateConflict(f"Selection cannot change while checkout is {self.state.value}")
        self.customizer.set_design(url)
        return url

    def set_customer(self, customer: CustomerInfo) -> None:
        self._require_editable()
        self.customer = customer

    # Payment

    def _require_no_upload(self) -> None:
        if self.design_uploading:
            raise StateConflict("Please wait for the design upload to finish")

    def proceed_to_payment(self) -> None:
        self._require_no_upload()
        if self.state in PAYABLE_STATES:
            return
        if self.state != CheckoutState.CUSTOMIZING:
            raise StateConflict(f"Cannot proceed to payment while checkout is {self.state.value}")
        if not self.customizer.selection.design_url:
            raise ValidationError("Please upload a design image first")
        self._move_to(CheckoutState.AWAITING_PAYMENT)

    async def begin_payment(
        self, method: PaymentMethod, customer: Optional[CustomerInfo] = None
    ) -> Optional[CheckoutWidget]:
        """Start a payment attempt.

        Returns the hosted widget configuration for the gateway method. Cash on
        delivery settles before returning, so it returns None.
        """
        if self.state == CheckoutState.PAYMENT_IN_FLIGHT:
            raise StateConflict("A payment is already in progress")
        self._require_no_upload()
        if self.state == CheckoutState.CUSTOMIZING:
            self.proceed_to_payment()
        if self.state not in PAYABLE_STATES:
            raise StateConflict(f"Cannot pay while checkout is {self.state.value}")

        if customer is not None:
            self.customer = customer
        missing = self.customer.missing_fields()
        if missing:
            raise ValidationError("Please fill in all customer details: " + ", ".join(missing))

        widget = None
        if method == PaymentMethod.GATEWAY:
            widget = self.gateway.checkout_widget(self.total, self.customer)

        self.payment_method = method
        self.widget = widget
        self.message = None
        self._outcome_taken = False
        self._move_to(CheckoutState.PAYMENT_IN_FLIGHT)

        if method == PaymentMethod.COD:
            await self.complete_payment(self.deferred.settle())
        return widget

    async def complete_payment(self, result: Union[PaymentSucceeded, PaymentFailed, PaymentCancelled]) -> None:
        if self.state != CheckoutState.PAYMENT_IN_FLIGHT or self._outcome_taken:
            raise StateConflict("No payment is awaiting an outcome")
        self._outcome_taken = True
        self.widget = None

        if isinstance(result, PaymentCancelled):
            self.message = "Payment cancelled"
            self._move_to(CheckoutState.PAYMENT_CANCELLED)
            return
        if isinstance(result, PaymentFailed):
            logger.info("Checkout %s payment failed: %s", self.id, result.description)
            self.message = f"Payment failed: {result.description}"
            self._move_to(CheckoutState.PAYMENT_FAILED)
            return

        self.payment_reference = result.payment_id
        try:
            order_id, order = await run_in_threadpool(
                self.placement.place, self.customizer, self.customer, result, self.user.id
            )
        except PersistenceError as e:
            logger.error(
                "Checkout %s: payment %s settled but order was not saved (partial order %s): %s",
                self.id, result.payment_id, e.order_id, e.message,
            )
            self.order_id = e.order_id
            self.message = SUPPORT_MESSAGE
            self._move_to(CheckoutState.ORDER_PERSISTENCE_FAILED)
            return

        self.order_id = order_id
        self.order_number = order.order_number
        if result.method == PaymentMethod.COD:
            self.message = "Order placed successfully! Pay on delivery."
        else:
            self.message = "Order placed successfully!"
        self._move_to(CheckoutState.FULFILLED)

    def view(self) -> SessionView:
        return SessionView(
            id=self.id,
            state=self.state,
            product_id=self.customizer.product.id,
            selection=self.customizer.selection,
            placement=self.customizer.effective_placement(),
            mockup_url=self.customizer.mockup_url(),
            unit_price=self.customizer.unit_price,
            total=self.total,
            design_uploading=self.design_uploading,
            customer=self.customer,
            payment_method=self.payment_method,
            widget=self.widget,
            message=self.message,
            order_id=self.order_id,
            order_number=self.order_number,
            payment_reference=self.payment_reference,
        )


class CheckoutRegistry:
    def __init__(self):
        self._sessions: Dict[str, CheckoutSession] = {}

    def add(self, session: CheckoutSession) -> CheckoutSession:
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> CheckoutSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFound("Checkout session not found")
        return session

    def discard(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise NotFound("Checkout session not found")

    def __len__(self):
        return len(self._sessions)
