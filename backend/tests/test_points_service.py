# Overview: Pytest coverage for the point accrual engine.

from datetime import timedelta
from decimal import Decimal

import pytest

from refpoints.errors import Inactive, InsufficientPoints, InvalidAmount, InvalidConfiguration, InvalidInput, NotFound
from refpoints.models import Customer, PointsTransaction
from refpoints.services import points_service
from refpoints.services.points_service import (
    TXN_ADJUST, TXN_EARN, TXN_REDEEM, apply_points, calculate_sale_points, compute_points,
)
from refpoints.time_utils import utcnow


class TestComputePoints:
    def test_fixed_rule_ignores_amount(self):
        assert compute_points("fixed", 100, 25) == 25

    def test_percentage_rule(self):
        assert compute_points("percentage", 200, 10) == 20

    def test_percentage_rule_floors(self):
        assert compute_points("percentage", Decimal("199.99"), 10) == 19

    def test_default_rule_one_point_per_ten(self):
        assert compute_points("default_per_amount", 97) == 9
        assert compute_points("default_per_amount", Decimal("9.99")) == 0

    def test_zero_amount(self):
        assert compute_points("percentage", 0, 50) == 0

    @pytest.mark.parametrize("amount", [-1, float("nan"), float("inf"), True, None, "abc", "1e30", Decimal("1E+30")])
    def test_invalid_amount(self, amount):
        with pytest.raises(InvalidAmount):
            compute_points("default_per_amount", amount)

    def test_results_stay_in_integer_range(self):
        assert compute_points("percentage", Decimal("1000000000"), Decimal("100000")) == points_service.MAX_POINTS
        assert compute_points("fixed", 0, 10**12) == points_service.MAX_POINTS

    def test_huge_delta_rejected(self, db_session, make_customer):
        customer = make_customer()
        with pytest.raises(InvalidInput):
            apply_points(customer.id, 10**30)

    def test_unknown_rule(self):
        with pytest.raises(InvalidConfiguration):
            compute_points("bogus", 10)

    def test_negative_fixed_points(self):
        with pytest.raises(InvalidConfiguration):
            compute_points("fixed", 10, -5)

    def test_percentage_requires_rate(self):
        with pytest.raises(InvalidConfiguration):
            compute_points("percentage", 10)


class TestCalculateSalePoints:
    def test_no_campaign_uses_default_rule(self, db_session):
        calc = calculate_sale_points(Decimal("250"))
        assert calc.total_points == 25
        assert calc.rule_type == "default_per_amount"
        assert calc.applied_rules

    def test_percentage_campaign_with_cap(self, db_session, make_campaign):
        campaign = make_campaign(reward_type="percentage", percentage_rate=Decimal("10"), maximum_points=15)
        calc = calculate_sale_points(Decimal("500"), campaign)
        assert calc.total_points == 15
        assert any("Capped" in r for r in calc.applied_rules)

    def test_minimum_purchase_not_met(self, db_session, make_campaign):
        campaign = make_campaign(reward_type="percentage", percentage_rate=Decimal("10"), minimum_purchase_cents=5000)
        assert calculate_sale_points(Decimal("49.99"), campaign).total_points == 0
        assert calculate_sale_points(Decimal("50"), campaign).total_points == 5


class TestApplyPoints:
    def test_credit_writes_ledger_row(self, db_session, make_customer):
        customer = make_customer(points=30)
        balance = apply_points(customer.id, 20, reason="Welcome bonus")
        db_session.commit()

        assert balance == 50
        refreshed = db_session.get(Customer, customer.id)
        assert refreshed.points == 50
        assert refreshed.points_earned == 50
        rows = db_session.query(PointsTransaction).filter_by(customer_id=customer.id).order_by(PointsTransaction.id).all()
        assert [r.points for r in rows] == [30, 20]
        assert rows[-1].transaction_type == TXN_EARN
        assert rows[-1].balance_after == 50
        assert sum(r.points for r in rows) == refreshed.points

    def test_overdraft_rejected_and_balance_unchanged(self, db_session, make_customer):
        customer = make_customer(points=30)

        with pytest.raises(InsufficientPoints) as exc:
            apply_points(customer.id, -50)
        db_session.rollback()

        assert exc.value.required == 50
        assert exc.value.available == 30
        assert points_service.get_balance(customer.id) == 30
        assert db_session.query(PointsTransaction).filter_by(customer_id=customer.id).count() == 1

    def test_debit_to_exactly_zero(self, db_session, make_customer):
        customer = make_customer(points=30)
        assert apply_points(customer.id, -30) == 0

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFound):
            apply_points(999999, 5)

    def test_rejects_non_integer_delta(self, db_session, make_customer):
        customer = make_customer()
        with pytest.raises(InvalidInput):
            apply_points(customer.id, 1.5)


class TestRedeemAndAdjust:
    def test_redeem_points(self, db_session, tenant, make_customer):
        customer = make_customer(points=100)
        result = points_service.redeem_points(tenant.id, customer.id, 40, "Free coffee")

        assert result == {
            "success": True,
            "points_redeemed": 40,
            "remaining_points": 60,
            "reward_description": "Free coffee",
        }
        refreshed = db_session.get(Customer, customer.id, populate_existing=True)
        assert refreshed.points_redeemed == 40
        row = db_session.query(PointsTransaction).filter_by(customer_id=customer.id, transaction_type=TXN_REDEEM).one()
        assert row.points == -40

    def test_redeem_more_than_balance(self, db_session, tenant, make_customer):
        customer = make_customer(points=10)
        with pytest.raises(InsufficientPoints):
            points_service.redeem_points(tenant.id, customer.id, 11)
        assert points_service.get_balance(customer.id) == 10

    def test_redeem_other_tenant_customer(self, db_session, tenant, other_tenant, make_customer):
        customer = make_customer(org=other_tenant, points=50)
        with pytest.raises(NotFound):
            points_service.redeem_points(tenant.id, customer.id, 10)

    def test_negative_adjustment_does_not_count_as_redeemed(self, db_session, tenant, make_customer):
        customer = make_customer(points=50)
        assert points_service.adjust_points(tenant.id, customer.id, -20, "Duplicate award") == 30

        refreshed = db_session.get(Customer, customer.id, populate_existing=True)
        assert refreshed.points_redeemed == 0
        row = db_session.query(PointsTransaction).filter_by(customer_id=customer.id, transaction_type=TXN_ADJUST).one()
        assert row.reason == "Duplicate award"

    def test_adjustment_requires_reason(self, db_session, tenant, make_customer):
        customer = make_customer()
        with pytest.raises(InvalidInput):
            points_service.adjust_points(tenant.id, customer.id, 5, "  ")


class TestProcessSale:
    def test_sale_without_campaign(self, db_session, tenant, make_customer):
        customer = make_customer()
        result = points_service.process_sale(tenant.id, customer.id, Decimal("97.00"), sale_reference="S-1")

        assert result["points_earned"] == 9
        assert result["total_points"] == 9
        row = db_session.query(PointsTransaction).filter_by(customer_id=customer.id).one()
        assert row.sale_reference == "S-1"

    def test_sale_with_ended_campaign(self, db_session, tenant, make_customer, make_campaign):
        customer = make_customer()
        now = utcnow()
        campaign = make_campaign(start_date=now - timedelta(days=10), end_date=now - timedelta(days=1))
        with pytest.raises(Inactive):
            points_service.process_sale(tenant.id, customer.id, 100, campaign_id=campaign.id)
        assert points_service.get_balance(customer.id) == 0
