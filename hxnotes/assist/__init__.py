"""
Assistant boundary for hxnotes.

Design intent:
- Generate advisory outputs (insights, referral drafts, differentials) from the viewed summary.
"""
