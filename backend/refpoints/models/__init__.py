from .tenancy import Organization
from .customers import Customer, PointsTransaction
from .campaigns import Campaign
from .products import PointTier, Product
from .coupons import Coupon
from .referrals import Referral
from .bills import BillSubmission
from .communications import NotificationLog

__all__ = [
    'Organization',
    'Customer', 'PointsTransaction',
    'Campaign',
    'Product', 'PointTier',
    'Coupon',
    'Referral',
    'BillSubmission',
    'NotificationLog',
]
