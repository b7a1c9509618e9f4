# Overview: Dashboard aggregates for a tenant.

from __future__ import annotations

from sqlalchemy import case, func

from ..extensions import db
from ..models import Campaign, Customer, Referral
from refpoints.time_utils import utcnow


def dashboard_stats(org_id: int, top_n: int = 5) -> dict:
    total_customers, active_customers, points_earned, points_redeemed = db.session.query(
        func.count(Customer.id),
        func.coalesce(func.sum(case((Customer.is_active.is_(True), 1), else_=0)), 0),
        func.coalesce(func.sum(Customer.points_earned), 0),
        func.coalesce(func.sum(Customer.points_redeemed), 0),
    ).filter(Customer.org_id == org_id).one()

    campaigns = db.session.query(Campaign).filter_by(org_id=org_id).all()
    now = utcnow()

    total_referrals = db.session.query(func.count(Referral.id)).filter(Referral.org_id == org_id).scalar()

    top = (
        db.session.query(Customer)
        .filter(Customer.org_id == org_id, Customer.is_active.is_(True), Customer.total_referrals > 0)
        .order_by(Customer.total_referrals.desc(), Customer.id.asc())
        .limit(top_n)
        .all()
    )

    return {
        "total_customers": total_customers,
        "active_customers": int(active_customers),
        "total_campaigns": len(campaigns),
        "active_campaigns": sum(1 for c in campaigns if c.is_running(now)),
        "total_referrals": total_referrals,
        "total_points_distributed": int(points_earned),
        "total_points_redeemed": int(points_redeemed),
        "top_referrers": [
            {"id": c.id, "name": c.name, "total_referrals": c.total_referrals, "points": c.points}
            for c in top
        ],
    }
