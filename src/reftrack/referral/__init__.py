"""Referral codes and per-user referral progress.

- Each Discord user gets one stable code (``{user_id}-{suffix}``)
- Paid purchases carrying the code credit the referrer
- Reaching the threshold earns a one-time reward
"""
