"""Root conftest — shared test configuration."""

import os

# Ensure tests don't accidentally use real API keys or the on-disk database
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test-fake-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_FORMAT", "text")
