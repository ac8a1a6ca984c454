"""Global pytest configuration."""

import os

# Set before any imports: tests never reach a real database or model provider
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "")
