"""
Shared pytest setup: environment defaults for modules that read config at import
time, and backend/ on sys.path so `dashboard`, `models` and `server` resolve.
"""
import os
import sys

os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production-use-only")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
