"""ORM Models — tables backing snapshot persistence."""
