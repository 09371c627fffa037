#!/usr/bin/env python3
"""
Maintenance pass over stored chat messages for one org.

- deletes messages with no query id
- trims whitespace around stored query ids
- removes exact duplicates (same thread, sender and text within the same second)

Usage:
    python scripts/clean_chat_storage.py [ORG_ID]

ORG_ID defaults to DEFAULT_ORG_ID from settings.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.api.deps import TenantContext  # noqa: E402
from app.core.logging import configure_logging  # noqa: E402
from app.core.settings import settings  # noqa: E402
from app.db.session import AsyncSessionLocal, engine  # noqa: E402
from app.services.chat import cleanup_chat_storage  # noqa: E402


async def main(org_id: str) -> None:
    async with AsyncSessionLocal() as db:
        counts = await cleanup_chat_storage(db, TenantContext(org_id=org_id))
    await engine.dispose()
    for name, value in counts.items():
        print(f"{name}: {value}")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else settings.default_org_id))
