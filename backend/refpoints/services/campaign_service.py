from __future__ import annotations

from sqlalchemy import func

from ..errors import InvalidConfiguration, NotFound
from ..extensions import db
from ..models import Campaign, Referral
from ..models.campaigns import REWARD_PERCENTAGE, VALID_REWARD_TYPES
from refpoints.time_utils import utcnow

UPDATABLE_FIELDS = (
    'name', 'description', 'reward_type', 'reward_per_referral', 'percentage_rate',
    'minimum_purchase_cents', 'maximum_points', 'goal_count', 'start_date', 'end_date', 'is_active',
)


def _enforce_rules(campaign: Campaign) -> None:
    if campaign.reward_type not in VALID_REWARD_TYPES:
        raise InvalidConfiguration(f"reward_type must be one of {', '.join(sorted(VALID_REWARD_TYPES))}")
    if campaign.reward_per_referral is None or campaign.reward_per_referral < 0:
        raise InvalidConfiguration("reward_per_referral must be >= 0")
    if campaign.reward_type == REWARD_PERCENTAGE and campaign.percentage_rate is None:
        raise InvalidConfiguration("percentage_rate is required for percentage campaigns")
    if campaign.percentage_rate is not None and not (0 <= campaign.percentage_rate <= 100):
        raise InvalidConfiguration("percentage_rate must be between 0 and 100")
    if campaign.goal_count is not None and campaign.goal_count < 0:
        raise InvalidConfiguration("goal_count must be >= 0")
    if campaign.maximum_points is not None and campaign.maximum_points < 0:
        raise InvalidConfiguration("maximum_points must be >= 0")
    if campaign.minimum_purchase_cents is not None and campaign.minimum_purchase_cents < 0:
        raise InvalidConfiguration("minimum_purchase must be >= 0")
    if campaign.start_date is None or campaign.end_date is None:
        raise InvalidConfiguration("start_date and end_date are required")
    if campaign.end_date < campaign.start_date:
        raise InvalidConfiguration("end_date must not be before start_date")


def get_campaign(org_id: int, campaign_id: int) -> Campaign:
    campaign = db.session.query(Campaign).filter_by(id=campaign_id, org_id=org_id).first()
    if not campaign:
        raise NotFound("Campaign not found")
    return campaign


def list_campaigns(org_id: int, active_only: bool = False) -> list[dict]:
    q = db.session.query(Campaign).filter_by(org_id=org_id)
    campaigns = q.order_by(Campaign.start_date.desc(), Campaign.id.desc()).all()
    if active_only:
        now = utcnow()
        campaigns = [c for c in campaigns if c.is_running(now)]
    return [c.to_dict() for c in campaigns]


def current_campaign(org_id: int) -> Campaign | None:
    """Most recently started campaign that is running now."""
    now = utcnow()
    return (
        db.session.query(Campaign)
        .filter(
            Campaign.org_id == org_id,
            Campaign.is_active.is_(True),
            Campaign.start_date <= now,
            Campaign.end_date >= now,
        )
        .order_by(Campaign.start_date.desc(), Campaign.id.desc())
        .first()
    )


def create_campaign(org_id: int, data: dict) -> Campaign:
    campaign = Campaign(org_id=org_id, **data)
    campaign.reward_type = campaign.reward_type or "fixed"
    if campaign.reward_per_referral is None:
        campaign.reward_per_referral = 0
    if campaign.goal_count is None:
        campaign.goal_count = 100
    if campaign.is_active is None:
        campaign.is_active = True
    _enforce_rules(campaign)
    db.session.add(campaign)
    db.session.commit()
    return campaign


def update_campaign(org_id: int, campaign_id: int, data: dict) -> Campaign:
    campaign = get_campaign(org_id, campaign_id)
    for key in UPDATABLE_FIELDS:
        if key in data:
            setattr(campaign, key, data[key])
    try:
        _enforce_rules(campaign)
    except InvalidConfiguration:
        db.session.rollback()
        raise
    db.session.commit()
    return campaign


def campaign_stats(org_id: int, campaign_id: int) -> dict:
    campaign = get_campaign(org_id, campaign_id)
    referrals_count, total_points = db.session.query(
        func.count(Referral.id),
        func.coalesce(func.sum(Referral.points_awarded), 0),
    ).filter(Referral.org_id == org_id, Referral.campaign_id == campaign.id).one()

    participants = campaign.participant_count
    return {
        "campaign_id": campaign.id,
        "participant_count": participants,
        "referrals_count": referrals_count,
        "conversion_rate": (referrals_count / participants) if participants > 0 else 0,
        "total_rewards": int(total_points),
        "goal_count": campaign.goal_count,
        "goal_progress": (campaign.referrals_count / campaign.goal_count) if campaign.goal_count else 0,
        "is_running": campaign.is_running(utcnow()),
    }
