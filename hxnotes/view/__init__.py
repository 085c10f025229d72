"""
View/selection boundary for hxnotes.

Design intent:
- Keep the displayed patient and summary version as derived, unpersisted state.
"""
