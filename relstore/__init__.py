"""RelStore — in-process relational data store with snapshot persistence.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
