# ecoevents/routers/products.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ecoevents.core.security import Caller, get_current_user, require_role
from ecoevents.deps import get_marketplace, nearby_query
from ecoevents.models.schemas import Category, ProductIn, ProductOut, ProductPage, ProductUpdate
from ecoevents.services.geo import NearbyQuery
from ecoevents.services.marketplace import Marketplace

router = APIRouter(prefix="/api/products", tags=["products"])

@router.get("", response_model=ProductPage)
async def list_products(
    q: NearbyQuery = Depends(nearby_query),
    category: Optional[Category] = Query(None),
    market: Marketplace = Depends(get_marketplace),
):
    return await market.list_products(q, category=category)

@router.get("/vendor/my-products", response_model=List[ProductOut])
async def my_products(user: Caller = Depends(require_role("vendor")),
                      market: Marketplace = Depends(get_marketplace)):
    return await market.my_products(user)

@router.get("/{product_id}", response_model=ProductOut)
async def get_product(product_id: str, market: Marketplace = Depends(get_marketplace)):
    return await market.get_product(product_id)

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(body: ProductIn, user: Caller = Depends(get_current_user),
                         market: Marketplace = Depends(get_marketplace)):
    product = await market.create_product(user, body)
    return {"message": "Product created successfully", "product": product}

@router.put("/{product_id}")
async def update_product(product_id: str, body: ProductUpdate,
                         user: Caller = Depends(get_current_user),
                         market: Marketplace = Depends(get_marketplace)):
    product = await market.update_product(product_id, user, body)
    return {"message": "Product updated successfully", "product": product}

@router.delete("/{product_id}")
async def delete_product(product_id: str, user: Caller = Depends(get_current_user),
                         market: Marketplace = Depends(get_marketplace)):
    await market.delete_product(product_id, user)
    return {"message": "Product deleted successfully"}

@router.post("/{product_id}/contact")
async def contact_vendor(product_id: str, user: Caller = Depends(get_current_user),
                         market: Marketplace = Depends(get_marketplace)):
    vendor = await market.contact_vendor(product_id, user)
    return {"message": "Contact information retrieved", "vendor": vendor}
