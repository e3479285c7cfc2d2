"""Weight sync infrastructure for Dosely.

Modules:
    reconcile — Trailing-window import from the health store into the backend
    dedup     — Deduplication keys (user + source + minute)
"""
