"""Global pytest configuration."""

import os

# Tests run against SQLite, local storage and stub collaborators
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
for name in ("REDIS_URL", "OPENAI_API_KEY", "RESEND_API_KEY"):
    os.environ.pop(name, None)
