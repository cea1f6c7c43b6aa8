# tests/conftest.py
from datetime import datetime, timedelta, timezone

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from ecoevents.core.security import Caller, create_token
from ecoevents.deps import get_marketplace
from ecoevents.main import app
from ecoevents.models.schemas import DonationIn, UserIn
from ecoevents.repos.inmemory import InMemoryRepo
from ecoevents.services.marketplace import Marketplace

T0 = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
BLR = (12.97, 77.59)   # Bengaluru city centre


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw) -> datetime:
        self.now = self.now + timedelta(**kw)
        return self.now


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def repo():
    return InMemoryRepo(cell_deg=0.5)

@pytest.fixture
def market(repo, clock):
    return Marketplace(repo, clock=clock)

@pytest.fixture
async def people(market, clock):
    """vendor, vendor2, ngo, ngo2, customer as Callers."""
    out = {}
    for key, name, roles, loc in [
        ("vendor", "Bloom Decor", ["vendor"], BLR),
        ("vendor2", "Lights & Co", ["vendor"], (12.99, 77.60)),
        ("ngo", "Food For All", ["ngo"], (12.93, 77.59)),
        ("ngo2", "Shelter Trust", ["ngo"], (13.02, 77.62)),
        ("customer", "Asha", ["customer"], BLR),
    ]:
        user = await market.register_user(UserIn(
            id=key, name=name, email=f"{key}@eco.local", phone="+91 90000 00000",
            roles=roles, address="Bengaluru, Karnataka", latitude=loc[0], longitude=loc[1],
        ))
        out[key] = Caller(user.id, roles)
        clock.advance(minutes=1)
    return out

def donation_body(clock, **over) -> DonationIn:
    data = dict(
        title="Leftover buffet",
        description="Packed vegetarian meals for about forty people.",
        category="food",
        quantity="40 meals",
        address="MG Road, Bengaluru",
        latitude=BLR[0],
        longitude=BLR[1],
        expiry_date=clock() + timedelta(days=1),
    )
    data.update(over)
    return DonationIn(**data)

def bearer(caller: Caller) -> dict:
    return {"Authorization": f"Bearer {create_token(caller.user_id, caller.roles)}"}

@pytest.fixture
async def test_client(market):
    app.dependency_overrides[get_marketplace] = lambda: market
    try:
        async with LifespanManager(app):
            transport = ASGITransport(app=app, raise_app_exceptions=True)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                yield ac
    finally:
        app.dependency_overrides.clear()

async def completed_donation(market, clock, vendor: Caller, ngo: Caller, **over) -> dict:
    """Run one donation through request, confirm and complete."""
    doc = await market.donations.create(vendor, donation_body(clock, **over))
    clock.advance(minutes=10)
    await market.donations.request(doc["_id"], ngo)
    clock.advance(minutes=10)
    await market.donations.confirm(doc["_id"], vendor)
    clock.advance(minutes=10)
    return await market.donations.complete(doc["_id"], vendor)
