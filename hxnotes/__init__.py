"""
hxnotes clinical-notes assistant package.

Design intent:
- Keep the patient record store, summary merge engine and view state as plain domain modules.
- Treat the generative summarization backend as an injected capability.
"""
