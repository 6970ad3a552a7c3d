"""Services Layer — command facade, import/export, record extraction.

Invariants:
    - CommandFacade is the only writer of the entity store
    - Import and extraction submit ordinary create commands through the facade
"""
