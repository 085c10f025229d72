"""
Record store boundary for hxnotes.

Design intent:
- Own the durable patient list and its append-only summary history.
- Persist through an injected port so backends can be swapped in tests.
"""
