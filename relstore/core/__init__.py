"""Core Layer — entity store, integrity engine, queries and analytics. No IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Everything here runs synchronously on the caller's thread

Design Decisions:
    - Functional core separated from imperative shell: persistence and HTTP wrap this layer
"""
