import pytest

from ecoevents.core.errors import AuthorizationError, NotFoundError, ValidationError
from ecoevents.models.schemas import ProductIn, ProductUpdate
from ecoevents.services.geo import NearbyQuery
from tests.conftest import BLR

pytestmark = pytest.mark.anyio


def product_body(**over) -> ProductIn:
    data = dict(
        name="Reusable marigold garland",
        description="Fabric marigold garlands, reusable across events.",
        category="decor",
        price=350,
        address="MG Road, Bengaluru",
        latitude=BLR[0],
        longitude=BLR[1],
        images=["garland-1.jpg"],
    )
    data.update(over)
    return ProductIn(**data)


async def test_create_and_list_nearby(market, people):
    created = await market.create_product(people["vendor"], product_body())
    assert created.is_available and created.eco_friendly
    assert created.vendor.name == "Bloom Decor"

    page = await market.list_products(NearbyQuery.build(latitude=12.98, longitude=77.59, radius=5))
    assert [p.id for p in page.products] == [created.id]
    assert page.products[0].distance == pytest.approx(1.1, abs=0.1)

    far = await market.list_products(NearbyQuery.build(latitude=28.61, longitude=77.21, radius=100))
    assert far.products == []

async def test_only_vendors_list_products(market, people):
    with pytest.raises(AuthorizationError):
        await market.create_product(people["customer"], product_body())

async def test_category_filter_and_availability(market, clock, people):
    decor = await market.create_product(people["vendor"], product_body())
    clock.advance(minutes=1)
    lights = await market.create_product(people["vendor"], product_body(name="Solar fairy lights", category="lighting"))

    page = await market.list_products(NearbyQuery.build(), category="lighting")
    assert [p.id for p in page.products] == [lights.id]

    await market.update_product(decor.id, people["vendor"], ProductUpdate(is_available=False))
    page = await market.list_products(NearbyQuery.build())
    assert [p.id for p in page.products] == [lights.id]
    assert len(await market.my_products(people["vendor"])) == 2

async def test_update_is_owner_only(market, people):
    created = await market.create_product(people["vendor"], product_body())
    with pytest.raises(AuthorizationError):
        await market.update_product(created.id, people["vendor2"], ProductUpdate(price=10))
    with pytest.raises(ValidationError):
        await market.update_product(created.id, people["vendor"], ProductUpdate(longitude=77.0))

    updated = await market.update_product(created.id, people["vendor"], ProductUpdate(price=10, tags=["reuse"]))
    assert updated.price == 10
    assert updated.tags == ["reuse"]
    assert updated.name == created.name

async def test_views_and_inquiries_are_counted(market, people):
    created = await market.create_product(people["vendor"], product_body())
    await market.get_product(created.id)
    viewed = await market.get_product(created.id)
    assert viewed.view_count == 2

    contact = await market.contact_vendor(created.id, people["customer"])
    assert contact.email == "vendor@eco.local"
    assert contact.donation_score == 0
    assert market.repo.products[created.id]["inquiry_count"] == 1

    with pytest.raises(AuthorizationError):
        await market.contact_vendor(created.id, people["ngo"])

async def test_delete(market, people):
    created = await market.create_product(people["vendor"], product_body())
    with pytest.raises(AuthorizationError):
        await market.delete_product(created.id, people["vendor2"])
    await market.delete_product(created.id, people["vendor"])
    with pytest.raises(NotFoundError):
        await market.get_product(created.id)
    page = await market.list_products(NearbyQuery.build(latitude=BLR[0], longitude=BLR[1]))
    assert page.pagination.total == 0
