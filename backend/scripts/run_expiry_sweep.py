from __future__ import annotations

import asyncio
import logging

from app.db.session import dispose_engine
from app.services.expiry_service import sweep


async def main() -> None:
    try:
        report = await sweep()
    finally:
        await dispose_engine()
    print(
        f"examined={report.examined} purged={report.purged} "
        f"failed={report.failed} tokens_removed={report.tokens_removed}"
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
