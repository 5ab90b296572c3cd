#!/usr/bin/env python3
"""Report whether the token ledger will use Supabase or fall back to memory."""

import os
import sys
from pathlib import Path

ENV_TEMPLATE = """# Supabase (token ledger, pickups and collector profiles)
EKO_SUPABASE_URL=https://your-project-id.supabase.co
EKO_SUPABASE_KEY=your-service-role-key-here

# API
EKO_API_PREFIX=/api
# Comma-separated or JSON array
# EKO_FRONTEND_ALLOWED_ORIGINS=http://localhost:3000

# Route exports
EKO_DATA_ROOT=./data
EKO_MAX_ROUTE_WAYPOINTS=25
"""


def _mask(value: str) -> str:
    return value[:20] + "..." + value[-6:] if len(value) > 30 else value


def main() -> int:
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    if not env_file.exists():
        env_file.write_text(ENV_TEMPLATE, encoding="utf-8")
        print(f"Created template .env at {env_file}; fill in the EKO_SUPABASE_* values.")
        return 1

    print(f"✅ Found .env at {env_file}")
    for name in ("EKO_SUPABASE_URL", "EKO_SUPABASE_KEY"):
        value = os.getenv(name)
        print(f"{'✅' if value else '⚠️ '} {name} in process environment: {_mask(value) if value else 'not set'}")

    sys.path.insert(0, str(project_root / "src"))
    from ekocollect.config import settings

    if settings.supabase_url and settings.supabase_key:
        print(f"✅ Supabase configured: {settings.supabase_url}")
        print(f"   ledger table: {settings.transactions_table}, pickups table: {settings.pickups_table}")
        return 0

    print("❌ Supabase is NOT configured; the token ledger will be kept in memory.")
    print("   Variables must use the EKO_ prefix, e.g. EKO_SUPABASE_URL.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
