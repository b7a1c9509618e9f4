# Overview: Pytest coverage for coupon issuing, validation and usage counting.

import pytest

from refpoints.errors import Inactive, InvalidConfiguration, LimitExceeded, NotFound
from refpoints.models import Coupon
from refpoints.services import coupon_ledger
from refpoints.services.code_generator import CODE_ALPHABET


class TestIssue:
    def test_issue_fresh_coupon(self, db_session, tenant):
        coupon = coupon_ledger.issue(tenant.id, value=15, usage_limit=3)

        assert len(coupon.code) == 8
        assert set(coupon.code) <= set(CODE_ALPHABET)
        assert coupon.usage_count == 0
        assert coupon.is_active is True
        assert coupon.remaining_uses == 3

    @pytest.mark.parametrize("value,usage_limit", [(10, 0), (10, -1), (-1, 5), (10, True)])
    def test_rejects_bad_configuration(self, db_session, tenant, value, usage_limit):
        with pytest.raises(InvalidConfiguration):
            coupon_ledger.issue(tenant.id, value=value, usage_limit=usage_limit)

    def test_unknown_campaign(self, db_session, tenant):
        with pytest.raises(NotFound):
            coupon_ledger.issue(tenant.id, value=10, usage_limit=1, campaign_id=4242)

    def test_registration_issues_personal_coupon(self, db_session, tenant, make_customer):
        customer = make_customer()
        coupon = coupon_ledger.get_by_code(tenant.id, customer.referral_code)

        assert coupon.customer_id == customer.id
        assert coupon.value == 10
        assert coupon.usage_limit == 100

    def test_personal_coupon_takes_campaign_reward(self, db_session, tenant, make_campaign, make_customer):
        campaign = make_campaign(reward_per_referral=40)
        customer = make_customer()
        coupon = coupon_ledger.get_by_code(tenant.id, customer.referral_code)

        assert coupon.value == 40
        assert coupon.campaign_id == campaign.id

    def test_code_oracle_sees_referral_codes(self, db_session, tenant, make_customer):
        customer = make_customer()
        assert coupon_ledger.code_exists(tenant.id, customer.referral_code)
        assert not coupon_ledger.code_exists(tenant.id, "ZZZZZZZZ")


class TestRedeem:
    def test_counts_use_and_deactivates_at_limit(self, db_session, tenant):
        coupon = coupon_ledger.issue(tenant.id, value=5, usage_limit=2)

        first = coupon_ledger.redeem(tenant.id, coupon.code)
        db_session.commit()
        assert first.usage_count == 1
        assert first.is_active is True

        second = coupon_ledger.redeem(tenant.id, coupon.code)
        db_session.commit()
        assert second.usage_count == 2
        assert second.is_active is False

        stored = db_session.get(Coupon, coupon.id, populate_existing=True)
        assert stored.deactivated_at is not None

        with pytest.raises(LimitExceeded):
            coupon_ledger.redeem(tenant.id, coupon.code)
        assert db_session.get(Coupon, coupon.id, populate_existing=True).usage_count == 2

    def test_lookup_is_case_insensitive(self, db_session, tenant):
        coupon = coupon_ledger.issue(tenant.id, value=5, usage_limit=2)
        snapshot = coupon_ledger.redeem(tenant.id, f"  {coupon.code.lower()} ")
        assert snapshot.id == coupon.id

    def test_unknown_code(self, db_session, tenant):
        with pytest.raises(NotFound):
            coupon_ledger.redeem(tenant.id, "NOPE2345")

    def test_deactivated_coupon(self, db_session, tenant):
        coupon = coupon_ledger.issue(tenant.id, value=5, usage_limit=2)
        coupon_ledger.deactivate(tenant.id, coupon.code)

        with pytest.raises(Inactive):
            coupon_ledger.redeem(tenant.id, coupon.code)

    def test_other_tenant_cannot_redeem(self, db_session, tenant, other_tenant):
        coupon = coupon_ledger.issue(tenant.id, value=5, usage_limit=2)
        with pytest.raises(NotFound):
            coupon_ledger.redeem(other_tenant.id, coupon.code)


class TestListing:
    def test_active_only_hides_spent_and_disabled(self, db_session, tenant):
        live = coupon_ledger.issue(tenant.id, value=5, usage_limit=5)
        spent = coupon_ledger.issue(tenant.id, value=5, usage_limit=1)
        disabled = coupon_ledger.issue(tenant.id, value=5, usage_limit=5)
        coupon_ledger.redeem(tenant.id, spent.code)
        db_session.commit()
        coupon_ledger.deactivate(tenant.id, disabled.code)

        codes = {c["code"] for c in coupon_ledger.list_coupons(tenant.id, active_only=True)}
        assert codes == {live.code}
        assert len(coupon_ledger.list_coupons(tenant.id)) == 3
