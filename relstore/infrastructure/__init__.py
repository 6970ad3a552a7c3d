"""Infrastructure Layer — snapshot database, structured logging, Anthropic client.

Invariants:
    - All external calls wrapped with retry/timeout/error mapping
    - Driver/SDK exceptions never escape: mapped to core/errors.py types
"""
