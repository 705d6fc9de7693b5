# backend/modules/payments/tests/test_split_payment_service.py

from decimal import Decimal

import pytest

from core.exceptions import GatewayError, InvalidTransitionError, ValidationError
from tests.factories import OrderFactory
from ..gateways import PaymentResult
from ..models.payment_models import OrderPayment, PaymentProvider
from ..services.split_payment_service import split_payment_service
from .conftest import razorpay_signature


def legs(db_session, order):
    return (
        db_session.query(OrderPayment)
        .filter_by(order_id=order.id)
        .order_by(OrderPayment.id)
        .all()
    )


class TestSplitPayment:

    async def test_cash_and_staff_confirmed_online_leg(self, db_session):
        order = OrderFactory()

        verification = await split_payment_service.process_split_payment(
            db_session, order.id, Decimal("300.00"), Decimal("225.00")
        )

        assert verification.order.payment_status == "paid"
        assert verification.order.payment_method == "split"
        assert verification.order.order_status == "received"
        assert verification.order.payment_split_details["online_provider"] == "manual"
        cash_leg, online_leg = legs(db_session, order)
        assert (cash_leg.provider, cash_leg.amount) == ("cash", Decimal("300.00"))
        assert (online_leg.provider, online_leg.amount) == ("manual", Decimal("225.00"))
        assert cash_leg.is_split and online_leg.is_split

    async def test_legs_must_add_up_to_the_total(self, db_session):
        order = OrderFactory()

        with pytest.raises(ValidationError, match="do not match"):
            await split_payment_service.process_split_payment(
                db_session, order.id, Decimal("300.00"), Decimal("200.00")
            )

        assert legs(db_session, order) == []

    async def test_one_paisa_rounding_is_accepted(self, db_session):
        order = OrderFactory()

        verification = await split_payment_service.process_split_payment(
            db_session, order.id, Decimal("262.50"), Decimal("262.49")
        )

        assert verification.order.payment_status == "paid"

    async def test_settled_order_is_rejected(self, db_session):
        order = OrderFactory(paid=True)

        with pytest.raises(InvalidTransitionError):
            await split_payment_service.process_split_payment(
                db_session, order.id, Decimal("300.00"), Decimal("225.00")
            )

    async def test_online_leg_is_verified_with_the_provider(
        self, db_session, razorpay_restaurant, fake_razorpay
    ):
        order = OrderFactory(restaurant_id=razorpay_restaurant.id)
        fake_razorpay.add_payment("pay_1", "order_1", 22500, order_id=order.id)

        verification = await split_payment_service.process_split_payment(
            db_session, order.id, Decimal("300.00"), Decimal("225.00"),
            online_result=PaymentResult(
                provider=PaymentProvider.RAZORPAY,
                provider_order_ref="order_1",
                provider_payment_id="pay_1",
                provider_signature=razorpay_signature("order_1", "pay_1"),
            ),
        )

        online_leg = verification.payment
        assert online_leg.provider == "razorpay"
        assert online_leg.provider_payment_id == "pay_1"
        assert verification.order.payment_split_details["provider_payment_id"] == "pay_1"

    async def test_online_leg_amount_must_match_verified_amount(
        self, db_session, razorpay_restaurant, fake_razorpay
    ):
        order = OrderFactory(restaurant_id=razorpay_restaurant.id)
        fake_razorpay.add_payment("pay_1", "order_1", 52500, order_id=order.id)

        with pytest.raises(GatewayError) as exc_info:
            await split_payment_service.process_split_payment(
                db_session, order.id, Decimal("300.00"), Decimal("225.00"),
                online_result=PaymentResult(
                    provider=PaymentProvider.RAZORPAY,
                    provider_order_ref="order_1",
                    provider_payment_id="pay_1",
                    provider_signature=razorpay_signature("order_1", "pay_1"),
                ),
            )

        assert exc_info.value.error_code == "PAYMENT_AMOUNT_MISMATCH"
        db_session.refresh(order)
        assert order.payment_status == "pending"
        assert legs(db_session, order) == []
