"""
Summary merge engine boundary for hxnotes.

Design intent:
- Build CREATE/UPDATE request context from the record store.
- Validate and post-process service output deterministically before it is stored.
"""
