# Overview: Pytest coverage for the Flask CLI command groups.

from refpoints.models import Coupon, Organization


class TestTenantCommands:
    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["tenants", "create", "--name", "Corner Cafe", "--code", "cafe"])
        assert result.exit_code == 0
        assert "Code: CAFE" in result.output

        listing = runner.invoke(args=["tenants", "list"])
        assert "Corner Cafe" in listing.output

    def test_duplicate_code_fails(self, app, db_session, tenant):
        result = app.test_cli_runner().invoke(args=["tenants", "create", "--name", "Again", "--code", tenant.code])
        assert result.exit_code != 0
        assert db_session.query(Organization).count() == 1


class TestCouponCommands:
    def test_issue_and_list(self, app, db_session, tenant):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "coupons", "issue", "--tenant", tenant.code, "--value", "20", "--usage-limit", "5",
        ])
        assert result.exit_code == 0
        coupon = db_session.query(Coupon).filter_by(org_id=tenant.id).one()
        assert coupon.value == 20

        listing = runner.invoke(args=["coupons", "list", "--tenant", tenant.code])
        assert coupon.code in listing.output

    def test_unknown_tenant(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["coupons", "list", "--tenant", "NOPE"])
        assert result.exit_code != 0

    def test_invalid_limit(self, app, db_session, tenant):
        result = app.test_cli_runner().invoke(args=[
            "coupons", "issue", "--tenant", tenant.code, "--value", "20", "--usage-limit", "0",
        ])
        assert result.exit_code != 0
