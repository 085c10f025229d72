"""
HTTP surface for hxnotes.

Design intent:
- Keep route handlers thin; domain rules live in records/summary/view/assist.
"""
