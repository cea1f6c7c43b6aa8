import asyncio
from datetime import timedelta

from ecoevents.core.clock import utcnow
from ecoevents.core.security import Caller, create_token
from ecoevents.deps import get_repo
from ecoevents.models.schemas import DonationIn, ProductIn, UserIn
from ecoevents.services.marketplace import Marketplace

async def main():
    repo = get_repo()
    if hasattr(repo, "ensure_indexes"):
        await repo.ensure_indexes()
    market = Marketplace(repo)

    vendor = await market.register_user(UserIn(
        name="Bloom Decor", email="vendor@eco.local", phone="+91 90000 00001",
        roles=["vendor"], address="MG Road, Bengaluru", latitude=12.9756, longitude=77.6050,
    ))
    ngo = await market.register_user(UserIn(
        name="Food For All", email="ngo@eco.local", phone="+91 90000 00002",
        roles=["ngo"], address="Jayanagar, Bengaluru", latitude=12.9250, longitude=77.5938,
    ))
    seller = Caller(vendor.id, ["vendor"])

    await market.create_donation(seller, DonationIn(
        title="Leftover wedding buffet",
        description="Packed vegetarian meals for about forty people.",
        category="food", quantity="40 meals", address="MG Road, Bengaluru",
        latitude=12.9756, longitude=77.6050,
        expiry_date=utcnow() + timedelta(hours=12),
        pickup_instructions="Ask for the banquet manager at the back gate.",
    ))
    await market.create_product(seller, ProductIn(
        name="Reusable marigold garland",
        description="Fabric marigold garlands, reusable across events.",
        category="decor", price=350, address="MG Road, Bengaluru",
        latitude=12.9756, longitude=77.6050, images=["garland-1.jpg"],
    ))

    print("Seeded vendor:", vendor.id, "token:", create_token(vendor.id, ["vendor"]))
    print("Seeded ngo:   ", ngo.id, "token:", create_token(ngo.id, ["ngo"]))

if __name__ == "__main__":
    asyncio.run(main())
