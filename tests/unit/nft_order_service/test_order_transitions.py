"""
Unit tests for order transitions

Each mutation is pure: it returns the changed order, or None when the
transition is already in effect.
"""
import pytest

from microservices.nft_order_service.models import (
    FailureStage,
    OrderStatus,
    PaymentStatus,
)
from microservices.nft_order_service.order_transitions import (
    StatusAdvance,
    annotate_failure,
    assign_fulfillment_ref,
    begin_nft,
    cancel_order,
    record_metadata_uri,
    record_mint_confirmed,
    record_mint_submitted,
    set_payment_status,
)
from microservices.nft_order_service.protocols import (
    InvalidTransitionError,
    InvariantViolationError,
)
from tests.fixtures import WALLET_ADDRESS, make_order

pytestmark = pytest.mark.unit


def _with_status(status: OrderStatus):
    order = make_order()
    order.status = status
    return order


class TestStatusAdvance:

    def test_moves_forward(self):
        advance = StatusAdvance(OrderStatus.SHIPPED)
        order = advance(_with_status(OrderStatus.PROCESSING))
        assert order.status == OrderStatus.SHIPPED
        assert advance.outcome == StatusAdvance.APPLIED

    def test_may_skip_intermediate_states(self):
        order = StatusAdvance(OrderStatus.DELIVERED)(_with_status(OrderStatus.PENDING))
        assert order.status == OrderStatus.DELIVERED

    @pytest.mark.parametrize("target", [OrderStatus.SHIPPED, OrderStatus.DELIVERED])
    def test_stale_or_duplicate_is_discarded(self, target):
        advance = StatusAdvance(target)
        assert advance(_with_status(OrderStatus.DELIVERED)) is None
        assert advance.outcome == StatusAdvance.STALE

    def test_cancelled_order_is_left_alone(self):
        advance = StatusAdvance(OrderStatus.SHIPPED)
        assert advance(_with_status(OrderStatus.CANCELLED)) is None
        assert advance.outcome == StatusAdvance.CANCELLED

    def test_cancelled_is_not_a_chain_target(self):
        with pytest.raises(ValueError):
            StatusAdvance(OrderStatus.CANCELLED)


class TestPaymentStatus:

    def test_pending_to_paid(self):
        order = set_payment_status(PaymentStatus.PAID)(make_order())
        assert order.payment_status == PaymentStatus.PAID

    def test_reapplying_current_value_is_noop(self):
        order = make_order()
        order.payment_status = PaymentStatus.PAID
        assert set_payment_status(PaymentStatus.PAID)(order) is None

    def test_paid_to_refunded(self):
        order = make_order()
        order.payment_status = PaymentStatus.PAID
        assert set_payment_status(PaymentStatus.REFUNDED)(order).payment_status == PaymentStatus.REFUNDED

    @pytest.mark.parametrize("current,target", [
        (PaymentStatus.FAILED, PaymentStatus.PAID),
        (PaymentStatus.REFUNDED, PaymentStatus.PAID),
        (PaymentStatus.PENDING, PaymentStatus.REFUNDED),
        (PaymentStatus.PAID, PaymentStatus.FAILED),
    ])
    def test_disallowed_moves_raise(self, current, target):
        order = make_order()
        order.payment_status = current
        with pytest.raises(InvalidTransitionError):
            set_payment_status(target)(order)


class TestCancel:

    @pytest.mark.parametrize("status", [OrderStatus.PENDING, OrderStatus.PROCESSING])
    def test_cancellable(self, status):
        assert cancel_order(_with_status(status)).status == OrderStatus.CANCELLED

    @pytest.mark.parametrize("status", [OrderStatus.SHIPPED, OrderStatus.DELIVERED])
    def test_too_late(self, status):
        with pytest.raises(InvalidTransitionError):
            cancel_order(_with_status(status))

    def test_repeat_is_noop(self):
        assert cancel_order(_with_status(OrderStatus.CANCELLED)) is None


class TestFulfillmentRef:

    def test_set_once(self):
        order = assign_fulfillment_ref("P-100")(make_order())
        assert order.fulfillment_ref == "P-100"
        assert assign_fulfillment_ref("P-100")(order) is None

    def test_never_reassigned(self):
        order = assign_fulfillment_ref("P-100")(make_order())
        with pytest.raises(InvariantViolationError):
            assign_fulfillment_ref("P-200")(order)


class TestAnnotations:

    def test_appends_and_skips_identical_repeat(self):
        mutation = annotate_failure(FailureStage.NFT, "MINT_REJECTED", "bad address")
        order = mutation(make_order())
        assert len(order.failures) == 1
        assert mutation(order) is None

    def test_latest_failure_per_stage(self):
        order = annotate_failure(FailureStage.FULFILLMENT, "FULFILLMENT_REJECTED", "no address", permanent=True)(
            make_order()
        )
        order = annotate_failure(FailureStage.NFT, "NFT_RETRIES_EXHAUSTED", "gateway down")(order)

        assert order.latest_failure(FailureStage.FULFILLMENT).permanent is True
        assert order.latest_failure(FailureStage.NFT).permanent is False
        assert make_order().latest_failure(FailureStage.NFT) is None


class TestNftMutations:

    def _bound(self):
        return begin_nft("T-1", "item-1", WALLET_ADDRESS)(make_order())

    def test_begin_is_one_shot(self):
        order = self._bound()
        assert begin_nft("T-1", "item-1", WALLET_ADDRESS)(order) is None
        with pytest.raises(InvariantViolationError):
            begin_nft("T-2", "item-1", WALLET_ADDRESS)(order)

    def test_mutations_require_a_bound_token(self):
        with pytest.raises(InvariantViolationError):
            record_mint_confirmed("0xabc")(make_order())

    def test_metadata_uri_recorded(self):
        order = record_metadata_uri("https://m.test/T-1")(self._bound())
        assert order.nft.metadata_uri == "https://m.test/T-1"

    def test_ambiguous_submission_stamps_time(self):
        order = record_mint_submitted(None)(self._bound())
        assert order.nft.submitted_at is not None
        assert order.nft.mint_tx_ref is None

    def test_confirmation_is_one_shot(self):
        order = record_mint_confirmed("0xabc")(self._bound())
        assert order.nft.minted
        assert order.nft.minted_at is not None
        assert record_mint_confirmed("0xabc")(order) is None
        assert record_mint_submitted("0xother")(order) is None
        with pytest.raises(InvariantViolationError):
            record_mint_confirmed("0xdef")(order)
