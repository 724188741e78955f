"""Pytest configuration."""

import os

# Ensure test environment: no database, no real geo providers
os.environ.setdefault("TL_STORE_BACKEND", "memory")
os.environ.setdefault("TL_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TL_GEO_PROVIDERS", "[]")
os.environ.setdefault("TL_DEBUG", "true")
