from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ecoevents.core.clock import as_utc

# --------------------------
# Shared
# --------------------------
Category = Literal["food", "attire", "decor", "lighting", "flowers", "other"]
DonationStatus = Literal["available", "requested", "confirmed", "completed", "expired"]
Role = Literal["vendor", "ngo", "customer", "admin"]
Period = Literal["all", "monthly", "weekly"]


class LatLng(BaseModel):
    lat: float
    lng: float


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class _In(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


# --------------------------
# Users
# --------------------------
class UserIn(_In):
    id: Optional[str] = None
    name: str = Field(..., min_length=2)
    email: Optional[str] = None
    phone: Optional[str] = None
    roles: List[Role] = Field(..., min_length=1)
    address: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    is_active: bool = True


class VendorSummary(BaseModel):
    id: str
    name: str
    address: Optional[str] = None
    location: Optional[LatLng] = None
    donation_score: int = 0


class ContactCard(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class UserOut(BaseModel):
    """Public profile: never carries the email address."""
    id: str
    name: str
    roles: List[str]
    phone: Optional[str] = None
    address: Optional[str] = None
    location: Optional[LatLng] = None
    donation_score: int = 0
    created_at: Optional[datetime] = None
    distance: Optional[float] = Field(None, serialization_alias="_distance")


class UserPage(BaseModel):
    users: List[UserOut]
    pagination: Pagination


class VendorStats(BaseModel):
    total_products: int
    total_donations: int
    completed_donations: int
    completion_rate: int


class NgoStats(BaseModel):
    requested_donations: int
    completed_donations: int
    success_rate: int


class UserStats(BaseModel):
    donation_score: int
    roles: List[str]
    member_since: Optional[datetime] = None
    vendor_stats: Optional[VendorStats] = None
    ngo_stats: Optional[NgoStats] = None


class LeaderboardEntry(BaseModel):
    rank: int
    score: int
    vendor: VendorSummary


class LeaderboardPage(BaseModel):
    leaderboard: List[LeaderboardEntry]
    pagination: Pagination
    period: Period


# --------------------------
# Donations
# --------------------------
class DonationIn(_In):
    title: str = Field(..., min_length=2)
    description: str = Field(..., min_length=10)
    category: Category
    quantity: str = Field(..., min_length=1)
    address: str = Field(..., min_length=5)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    expiry_date: datetime
    pickup_instructions: str = ""
    images: List[str] = Field(default_factory=list, max_length=3)

    @field_validator("expiry_date")
    @classmethod
    def utc_expiry(cls, v):
        return as_utc(v)


class DonationUpdate(_In):
    title: Optional[str] = Field(None, min_length=2)
    description: Optional[str] = Field(None, min_length=10)
    category: Optional[Category] = None
    quantity: Optional[str] = Field(None, min_length=1)
    address: Optional[str] = Field(None, min_length=5)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    expiry_date: Optional[datetime] = None
    pickup_instructions: Optional[str] = None

    @field_validator("expiry_date")
    @classmethod
    def utc_expiry(cls, v):
        return as_utc(v) if v is not None else v


class CompleteIn(_In):
    impact_notes: str = ""


class DonationOut(BaseModel):
    id: str
    vendor_id: str
    vendor: Optional[VendorSummary] = None
    title: str
    description: str
    category: Category
    quantity: str
    images: List[str] = []
    address: str
    location: LatLng
    expiry_date: datetime
    status: DonationStatus
    requested_by: Optional[str] = None
    requested_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    pickup_instructions: str = ""
    impact_notes: str = ""
    points_awarded: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None
    distance: Optional[float] = Field(None, serialization_alias="_distance")


class DonationDetailOut(DonationOut):
    vendor_contact: Optional[ContactCard] = None
    requester: Optional[ContactCard] = None


class DonationPage(BaseModel):
    donations: List[DonationOut]
    pagination: Pagination


# --------------------------
# Products
# --------------------------
class ProductIn(_In):
    name: str = Field(..., min_length=2)
    description: str = Field(..., min_length=10)
    category: Category
    price: float = Field(..., ge=0)
    address: str = Field(..., min_length=5)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    images: List[str] = Field(..., min_length=1, max_length=5)
    tags: List[str] = Field(default_factory=list)
    contact_visible: bool = False


class ProductUpdate(_In):
    name: Optional[str] = Field(None, min_length=2)
    description: Optional[str] = Field(None, min_length=10)
    category: Optional[Category] = None
    price: Optional[float] = Field(None, ge=0)
    address: Optional[str] = Field(None, min_length=5)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    tags: Optional[List[str]] = None
    is_available: Optional[bool] = None
    contact_visible: Optional[bool] = None


class ProductOut(BaseModel):
    id: str
    vendor_id: str
    vendor: Optional[VendorSummary] = None
    name: str
    description: str
    category: Category
    price: float
    images: List[str] = []
    tags: List[str] = []
    address: str
    location: LatLng
    is_available: bool = True
    eco_friendly: bool = True
    contact_visible: bool = False
    view_count: int = 0
    inquiry_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None
    distance: Optional[float] = Field(None, serialization_alias="_distance")


class ProductPage(BaseModel):
    products: List[ProductOut]
    pagination: Pagination


class VendorContact(ContactCard):
    donation_score: int = 0
