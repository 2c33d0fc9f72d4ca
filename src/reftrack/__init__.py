"""reftrack - referral tracking for Whop purchases with Discord rewards."""

__version__ = "1.0.0"
