"""Referral attribution for every entity type.

- Referral codes are unique across users, companies, wholesalers,
  service providers and salespeople
- Salesperson referrals earn a flat currency reward, every other referrer
  earns points
- Each referred entity is attributed at most once
"""

from bazaar.referral.models import ReferralCommission
from bazaar.referral.service import ReferralService, referral_service

__all__ = ["ReferralCommission", "ReferralService", "referral_service"]
