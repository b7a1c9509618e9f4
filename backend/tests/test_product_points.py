# Overview: Pytest coverage for per-product point rules and itemised sales.

from decimal import Decimal

import pytest

from refpoints.errors import InvalidConfiguration, InvalidInput, NotFound
from refpoints.models import Customer
from refpoints.schemas import SaleItem
from refpoints.services import points_service, product_service
from refpoints.services.points_service import SaleLine, calculate_sale_points


@pytest.fixture
def make_product(db_session, tenant):
    """Factory: a catalog product for the primary shop."""
    counter = iter(range(1, 1000))

    def _make(org=None, **fields):
        data = {
            "product_code": f"item-{next(counter)}",
            "name": "Latte",
            "price_cents": 450,
        }
        data.update(fields)
        return product_service.create_product((org or tenant).id, data)
    return _make


class TestProductCatalog:
    def test_code_is_normalized_and_defaults_apply(self, db_session, tenant, make_product):
        product = make_product(product_code="  latte-l ")
        assert product.product_code == "LATTE-L"
        assert product.point_calculation_type == "inherit"
        assert product.minimum_quantity == 1
        assert product.is_active is True

    def test_duplicate_code_rejected(self, db_session, tenant, make_product):
        make_product(product_code="MUG")
        with pytest.raises(InvalidConfiguration):
            make_product(product_code="mug")

    def test_same_code_in_other_shop(self, db_session, tenant, other_tenant, make_product):
        make_product(product_code="MUG")
        assert make_product(org=other_tenant, product_code="MUG").org_id == other_tenant.id

    def test_fixed_rule_needs_points(self, db_session, tenant, make_product):
        with pytest.raises(InvalidConfiguration):
            make_product(point_calculation_type="fixed")

    def test_percentage_out_of_range(self, db_session, tenant, make_product):
        with pytest.raises(InvalidConfiguration):
            make_product(point_calculation_type="percentage", percentage_rate=Decimal("150"))

    def test_update_ignores_code(self, db_session, tenant, make_product):
        product = make_product(product_code="MUG")
        updated = product_service.update_product(tenant.id, product.id, {"name": "Big Mug", "product_code": "X"})
        assert updated.name == "Big Mug"
        assert updated.product_code == "MUG"

    def test_other_shop_cannot_read(self, db_session, tenant, other_tenant, make_product):
        product = make_product()
        with pytest.raises(NotFound):
            product_service.get_product(other_tenant.id, product.id)

    def test_tiers_only_on_tier_products(self, db_session, tenant, make_product):
        product = make_product(point_calculation_type="fixed", fixed_points=5)
        with pytest.raises(InvalidConfiguration):
            product_service.add_point_tier(tenant.id, product.id, min_amount_cents=0, points=1)

    def test_overlapping_tiers_rejected(self, db_session, tenant, make_product):
        product = make_product(point_calculation_type="tier")
        product_service.add_point_tier(tenant.id, product.id, min_amount_cents=0, max_amount_cents=999, points=3)
        with pytest.raises(InvalidConfiguration):
            product_service.add_point_tier(tenant.id, product.id, min_amount_cents=500, points=5)
        product_service.add_point_tier(tenant.id, product.id, min_amount_cents=1000, points=5)
        assert [t.min_amount_cents for t in product.tiers] == [0, 1000]


class TestItemisedPoints:
    def test_fixed_points_times_quantity_and_bonus(self, db_session, make_product):
        product = make_product(point_calculation_type="fixed", fixed_points=5, bonus_multiplier=Decimal("1.5"))
        calc = calculate_sale_points(lines=[SaleLine(quantity=3, unit_price=Decimal("4.50"), product=product)])
        assert calc.total_points == 22
        assert calc.item_points[0]["points"] == 22
        assert calc.item_points[0]["quantity"] == 3

    def test_percentage_is_per_unit(self, db_session, make_product):
        product = make_product(point_calculation_type="percentage", percentage_rate=Decimal("10"))
        calc = calculate_sale_points(lines=[SaleLine(quantity=2, unit_price=Decimal("19.99"), product=product)])
        assert calc.total_points == 2

    def test_tier_matches_unit_price(self, db_session, tenant, make_product):
        product = make_product(point_calculation_type="tier")
        product_service.add_point_tier(tenant.id, product.id, min_amount_cents=0, max_amount_cents=999, points=3)
        product_service.add_point_tier(
            tenant.id, product.id, min_amount_cents=1000, points=10, multiplier=Decimal("1.5"),
        )
        cheap = calculate_sale_points(lines=[SaleLine(quantity=1, unit_price=Decimal("9.99"), product=product)])
        dear = calculate_sale_points(lines=[SaleLine(quantity=1, unit_price=Decimal("12.00"), product=product)])
        assert cheap.total_points == 3
        assert dear.total_points == 15

    def test_tier_without_match_earns_nothing(self, db_session, tenant, make_product):
        product = make_product(point_calculation_type="tier")
        product_service.add_point_tier(tenant.id, product.id, min_amount_cents=5000, points=10)
        calc = calculate_sale_points(lines=[SaleLine(quantity=1, unit_price=Decimal("1.00"), product=product)])
        assert calc.total_points == 0

    def test_minimum_quantity_not_met(self, db_session, make_product):
        product = make_product(point_calculation_type="fixed", fixed_points=5, minimum_quantity=2)
        calc = calculate_sale_points(lines=[SaleLine(quantity=1, unit_price=Decimal("4.50"), product=product)])
        assert calc.total_points == 0
        assert "Minimum quantity" in calc.item_points[0]["calculation"]

    def test_inherit_uses_campaign_rule(self, db_session, make_product, make_campaign):
        product = make_product()
        campaign = make_campaign(reward_type="percentage", percentage_rate=Decimal("10"))
        calc = calculate_sale_points(
            campaign=campaign, lines=[SaleLine(quantity=2, unit_price=Decimal("25.00"), product=product)],
        )
        assert calc.total_points == 4

    def test_inherit_without_campaign_uses_default(self, db_session, make_product):
        product = make_product()
        calc = calculate_sale_points(lines=[SaleLine(quantity=2, unit_price=Decimal("25.00"), product=product)])
        assert calc.total_points == 4
        assert calc.applied_rules[0].startswith("Default rule")

    def test_free_text_line_uses_default(self, db_session):
        calc = calculate_sale_points(lines=[SaleLine(quantity=1, unit_price=Decimal("30"), product_name="Cake")])
        assert calc.total_points == 3
        assert calc.item_points[0]["product_name"] == "Cake"
        assert calc.item_points[0]["product_id"] is None

    def test_lines_are_summed(self, db_session, make_product):
        product = make_product(point_calculation_type="fixed", fixed_points=5)
        calc = calculate_sale_points(lines=[
            SaleLine(quantity=1, unit_price=Decimal("4.50"), product=product),
            SaleLine(quantity=1, unit_price=Decimal("50"), product_name="Beans"),
        ])
        assert calc.total_points == 10
        assert [i["points"] for i in calc.item_points] == [5, 5]

    def test_campaign_cap_applies_to_total(self, db_session, make_product, make_campaign):
        product = make_product(point_calculation_type="fixed", fixed_points=20)
        campaign = make_campaign(reward_type="percentage", percentage_rate=Decimal("10"), maximum_points=15)
        calc = calculate_sale_points(
            campaign=campaign, lines=[SaleLine(quantity=1, unit_price=Decimal("4.50"), product=product)],
        )
        assert calc.total_points == 15

    def test_minimum_purchase_zeroes_items(self, db_session, make_product, make_campaign):
        product = make_product(point_calculation_type="fixed", fixed_points=20)
        campaign = make_campaign(minimum_purchase_cents=5000)
        calc = calculate_sale_points(
            campaign=campaign, lines=[SaleLine(quantity=2, unit_price=Decimal("15.00"), product=product)],
        )
        assert calc.total_points == 0
        assert calc.item_points[0]["points"] == 0

    def test_explicit_amount_overrides_line_sum(self, db_session, make_product, make_campaign):
        product = make_product(point_calculation_type="fixed", fixed_points=20)
        campaign = make_campaign(minimum_purchase_cents=5000)
        calc = calculate_sale_points(
            Decimal("60.00"), campaign, [SaleLine(quantity=2, unit_price=Decimal("15.00"), product=product)],
        )
        assert calc.total_points == 40


class TestResolveSaleLines:
    def test_product_price_used_when_missing(self, db_session, tenant, make_product):
        product = make_product(price_cents=450)
        lines = product_service.resolve_sale_lines(tenant.id, [SaleItem(quantity=2, product_id=product.id)])
        assert lines[0].unit_price == Decimal("4.50")
        assert lines[0].line_total == Decimal("9.00")
        assert lines[0].product.id == product.id

    def test_given_price_wins(self, db_session, tenant, make_product):
        product = make_product(price_cents=450)
        lines = product_service.resolve_sale_lines(
            tenant.id, [SaleItem(quantity=1, product_id=product.id, unit_price=Decimal("3.00"))],
        )
        assert lines[0].unit_price == Decimal("3.00")

    def test_item_without_price_or_product(self, db_session, tenant):
        with pytest.raises(InvalidInput):
            product_service.resolve_sale_lines(tenant.id, [SaleItem(quantity=1, product_name="Cake")])

    def test_other_shop_product_not_found(self, db_session, tenant, other_tenant, make_product):
        product = make_product(org=other_tenant)
        with pytest.raises(NotFound):
            product_service.resolve_sale_lines(tenant.id, [SaleItem(quantity=1, product_id=product.id)])


class TestItemisedSale:
    def test_process_sale_with_lines(self, db_session, tenant, make_customer, make_product):
        customer = make_customer()
        product = make_product(point_calculation_type="fixed", fixed_points=5)
        result = points_service.process_sale(
            tenant.id, customer.id, lines=[SaleLine(quantity=2, unit_price=Decimal("4.50"), product=product)],
        )
        assert result["points_earned"] == 10
        assert result["calculation"]["item_points"][0]["points"] == 10
        assert db_session.get(Customer, customer.id, populate_existing=True).points == 10


class TestProductsApi:
    def test_create_and_fetch(self, client, db_session, headers):
        created = client.post("/api/products", headers=headers, json={
            "productCode": "latte", "name": "Latte", "price": "4.50",
            "pointCalculationType": "fixed", "fixedPoints": 5,
        })
        assert created.status_code == 201
        body = created.get_json()
        assert body["product_code"] == "LATTE"
        assert body["price_cents"] == 450
        assert body["tiers"] == []

        fetched = client.get(f"/api/products/{body['id']}", headers=headers)
        assert fetched.get_json()["fixed_points"] == 5
        assert len(client.get("/api/products", headers=headers).get_json()) == 1

    def test_create_requires_code(self, client, db_session, headers):
        response = client.post("/api/products", headers=headers, json={"name": "Latte"})
        assert response.status_code == 400

    def test_patch_cannot_change_code(self, client, db_session, headers, make_product):
        product = make_product()
        response = client.patch(f"/api/products/{product.id}", headers=headers, json={"productCode": "NEW"})
        assert response.status_code == 400

    def test_add_tier(self, client, db_session, headers, make_product):
        product = make_product(point_calculation_type="tier")
        response = client.post(f"/api/products/{product.id}/tiers", headers=headers, json={
            "minAmount": "10.00", "points": 10, "multiplier": "2",
        })
        assert response.status_code == 201
        assert response.get_json()["min_amount_cents"] == 1000

        clash = client.post(f"/api/products/{product.id}/tiers", headers=headers, json={"minAmount": 20, "points": 1})
        assert clash.status_code == 400

    def test_other_tenant_gets_404(self, client, db_session, other_tenant, make_product):
        product = make_product()
        response = client.get(f"/api/products/{product.id}", headers={"X-Tenant": other_tenant.code})
        assert response.status_code == 404

    def test_itemised_preview_and_process(self, client, db_session, headers, make_customer, make_product):
        customer = make_customer()
        product = make_product(point_calculation_type="fixed", fixed_points=5)
        items = [
            {"productId": product.id, "quantity": 2},
            {"productName": "Cake", "unitPrice": "30.00", "quantity": 1},
        ]
        preview = client.post("/api/sales/preview-points", headers=headers, json={"items": items})
        assert preview.status_code == 200
        assert preview.get_json()["total_points"] == 13

        sale = client.post("/api/sales/process", headers=headers, json={"customerId": customer.id, "items": items})
        assert sale.status_code == 200
        assert sale.get_json()["points_earned"] == 13
        assert db_session.get(Customer, customer.id, populate_existing=True).points == 13

    def test_sale_needs_amount_or_items(self, client, db_session, headers, make_customer):
        customer = make_customer()
        response = client.post("/api/sales/process", headers=headers, json={"customerId": customer.id})
        assert response.status_code == 400
