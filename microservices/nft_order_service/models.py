"""
NFT Order Service Data Models

Pydantic models for orders, their two independent lifecycle axes
(delivery status and payment status), the order-bound NFT record and the
inbound pipeline events.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    """Physical/delivery lifecycle"""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment lifecycle, independent of OrderStatus"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class ProductType(str, Enum):
    """Catalog product type tag"""
    DIGITAL = "digital"
    SUBSCRIPTION = "subscription"
    PHYSICAL = "physical"
    SERVICE = "service"


class FailureStage(str, Enum):
    """Pipeline stage a failure annotation belongs to"""
    FULFILLMENT = "fulfillment"
    NFT = "nft"
    PAYMENT = "payment"


class MintState(str, Enum):
    """Sub-state of the order-bound NFT"""
    NOT_STARTED = "not_started"
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"


# Position along the monotonic delivery chain. CANCELLED is a side branch.
STATUS_RANK: Dict[OrderStatus, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.PROCESSING: 1,
    OrderStatus.SHIPPED: 2,
    OrderStatus.DELIVERED: 3,
}

CANCELLABLE_STATUSES = {OrderStatus.PENDING, OrderStatus.PROCESSING}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, set] = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),  # Terminal
    PaymentStatus.REFUNDED: set(),  # Terminal
}


# Core Order Models

class OrderItem(BaseModel):
    """Order line item with the product snapshot taken at checkout"""
    product_id: str
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    variant: Optional[str] = None
    product_name: Optional[str] = None
    product_type: ProductType = ProductType.PHYSICAL
    nft_eligible: bool = False
    provider_variant_id: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def requires_fulfillment(self) -> bool:
        return self.product_type == ProductType.PHYSICAL

    @property
    def issues_nft(self) -> bool:
        return self.nft_eligible and self.product_type in (ProductType.PHYSICAL, ProductType.DIGITAL)


class ShippingAddress(BaseModel):
    """Recipient address"""
    name: str
    address1: str
    address2: Optional[str] = None
    city: str
    state: Optional[str] = None
    zip: str
    country: str


class CustomerContact(BaseModel):
    """Customer contact details and wallet for NFT delivery"""
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    wallet_address: Optional[str] = None


class NftRecord(BaseModel):
    """Order-bound NFT. Created once; token_id never changes."""
    token_id: str
    product_id: str
    owner_address: str
    metadata_uri: Optional[str] = None
    mint_tx_ref: Optional[str] = None
    minted: bool = False
    submitted_at: Optional[datetime] = None
    minted_at: Optional[datetime] = None

    @property
    def state(self) -> MintState:
        if self.minted:
            return MintState.CONFIRMED
        if self.mint_tx_ref or self.submitted_at:
            return MintState.UNCONFIRMED
        return MintState.NOT_STARTED


class FailureAnnotation(BaseModel):
    """Operator-visible failure attached to an order"""
    stage: FailureStage
    code: str
    message: str
    permanent: bool = False  # needs operator action; not re-driven by event redelivery
    occurred_at: datetime = Field(default_factory=utc_now)


class Order(BaseModel):
    """Core order model"""
    order_id: str
    items: List[OrderItem]
    total_amount: Decimal
    currency: str = "USD"
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    fulfillment_ref: Optional[str] = None
    nft: Optional[NftRecord] = None
    shipping_address: Optional[ShippingAddress] = None
    customer_contact: CustomerContact
    failures: List[FailureAnnotation] = Field(default_factory=list)
    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def physical_items(self) -> List[OrderItem]:
        return [item for item in self.items if item.requires_fulfillment]

    @property
    def requires_fulfillment(self) -> bool:
        return bool(self.physical_items)

    @property
    def nft_item(self) -> Optional[OrderItem]:
        """The line item the order's token is bound to"""
        for item in self.items:
            if item.issues_nft:
                return item
        return None

    @property
    def nft_minted(self) -> bool:
        return bool(self.nft and self.nft.minted)

    def latest_failure(self, stage: FailureStage) -> Optional[FailureAnnotation]:
        for failure in reversed(self.failures):
            if failure.stage == stage:
                return failure
        return None

    def touch(self) -> None:
        """Stamp updated_at, never moving backwards"""
        now = utc_now()
        if now <= self.updated_at:
            now = self.updated_at + timedelta(microseconds=1)
        self.updated_at = now


# Request Models

class OrderCreateRequest(BaseModel):
    """Order as submitted by the storefront checkout flow"""
    order_id: str = Field(..., min_length=1, description="Globally unique order id")
    items: List[OrderItem] = Field(..., min_length=1, description="Order items")
    total_amount: Decimal = Field(..., gt=0, description="Total order amount")
    currency: str = Field(default="USD", description="Order currency")
    shipping_address: Optional[ShippingAddress] = None
    customer_contact: CustomerContact

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        return v.upper()

    def to_order(self) -> Order:
        now = utc_now()
        return Order(
            order_id=self.order_id,
            items=self.items,
            total_amount=self.total_amount,
            currency=self.currency,
            shipping_address=self.shipping_address,
            customer_contact=self.customer_contact,
            created_at=now,
            updated_at=now,
        )


class OrderFilter(BaseModel):
    """Administrative order listing filter"""
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)


# Inbound Events

class OrderCreatedEvent(BaseModel):
    """Storefront checkout produced a new order"""
    order: OrderCreateRequest


class PaymentConfirmedEvent(BaseModel):
    """Payment processor confirmed payment"""
    order_id: str
    payment_ref: Optional[str] = None


class PaymentFailedEvent(BaseModel):
    """Payment processor reported a failed payment"""
    order_id: str
    reason: Optional[str] = None


class PaymentRefundedEvent(BaseModel):
    """Payment processor issued a refund"""
    order_id: str
    reason: Optional[str] = None


class FulfillmentStatusChangedEvent(BaseModel):
    """Fulfillment provider reported a status change"""
    order_id: str
    provider_status: str


class CancellationRequestedEvent(BaseModel):
    """Customer or operator asked to cancel"""
    order_id: str
    reason: Optional[str] = None


# Response Models

class FulfillmentRef(BaseModel):
    """Result of a fulfillment dispatch"""
    order_id: str
    provider_order_id: str
    dispatched: bool = Field(..., description="False when an existing reference was reused")


class NftHandle(BaseModel):
    """Result of an NFT issuance attempt"""
    order_id: str
    token_id: str
    state: MintState
    mint_tx_ref: Optional[str] = None
    metadata_uri: Optional[str] = None
    owner_address: Optional[str] = None

    @property
    def minted(self) -> bool:
        return self.state == MintState.CONFIRMED

    @classmethod
    def from_order(cls, order: Order) -> "NftHandle":
        nft = order.nft
        return cls(
            order_id=order.order_id,
            token_id=nft.token_id,
            state=nft.state,
            mint_tx_ref=nft.mint_tx_ref,
            metadata_uri=nft.metadata_uri,
            owner_address=nft.owner_address,
        )


class MintResult(BaseModel):
    """Blockchain gateway answer to a mint or lookup"""
    tx_ref: Optional[str] = None
    confirmed: bool = False


class PipelineResponse(BaseModel):
    """Result of handling one inbound event"""
    success: bool
    order: Optional[Order] = None
    message: str
    error_code: Optional[str] = None


class OrderPage(BaseModel):
    """Order list response"""
    orders: List[Order]
    total_count: int
    page: int
    page_size: int
    has_next: bool


class OwnershipResponse(BaseModel):
    """Ownership verification result"""
    token_id: str
    owner: Optional[str] = None
    expected_owner: Optional[str] = None
    matches: Optional[bool] = None
