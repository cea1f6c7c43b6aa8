import asyncio
import logging

from ecoevents.deps import get_repo
from ecoevents.services.donations import DonationService

async def main():
    logging.basicConfig(level=logging.INFO)
    expired = await DonationService(get_repo()).expire_overdue()
    print(f"Expired {len(expired)} donation(s)")

if __name__ == "__main__":
    asyncio.run(main())
