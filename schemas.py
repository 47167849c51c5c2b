"""
Database Schemas for the Kiran Sales storefront

Each Pydantic model corresponds to a MongoDB collection. Collection names are
the plural, lowercase form of the class name (User -> "users").
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


USER_ROLES = ("customer", "admin")
USER_STATUSES = ("active", "inactive", "suspended")


class User(BaseModel):
    email: EmailStr
    password: str = Field(..., description="bcrypt hash")
    firstName: str
    lastName: str
    phone: Optional[str] = None
    address: Optional[str] = None
    role: str = Field("customer", description="customer | admin")
    status: str = Field("active", description="active | inactive | suspended")
    createdAt: datetime = Field(default_factory=utcnow)


class Product(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    name: str
    price: float = Field(..., ge=0)
    originalPrice: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    subcategory: Optional[str] = None
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    stock: int = Field(0, ge=0)
    status: str = Field("active", description="active | out_of_stock")
    image: Optional[str] = Field(None, description="URL or data URI")
    description: Optional[str] = None


class OrderItem(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: Optional[str] = None
    productId: Optional[str] = None
    name: Optional[str] = None
    price: float = 0
    quantity: int = 1
    size: Optional[str] = None
    color: Optional[str] = None


class Customer(BaseModel):
    """Snapshot taken at order time, never a live reference to the user."""

    id: Optional[str] = None
    name: str
    email: str
    phone: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None


class Order(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    orderId: str
    userId: Optional[str] = None
    customer: Customer
    items: List[OrderItem]
    totalAmount: float
    paymentMethod: Optional[str] = None
    paymentStatus: str = "Pending"
    status: str = "Pending"
    # free text: Pending, Confirmed, Processing, Shipped, Out for Delivery, Delivered, Cancelled
    deliveryStatus: str = "Pending"
    shippingAddress: Optional[Any] = None
    shippingAddressId: Optional[str] = None
    transactionId: Optional[str] = None
    orderDate: str
    createdAt: datetime = Field(default_factory=utcnow)


class Address(BaseModel):
    userId: str
    address: str
    city: str
    pincode: str
    primary: bool = False
    createdAt: datetime = Field(default_factory=utcnow)


class Wishlist(BaseModel):
    email: str
    items: List[Dict[str, Any]] = Field(default_factory=list)


class Review(BaseModel):
    productId: str
    userId: str
    orderId: str
    rating: int = Field(..., ge=1, le=5)
    review: str = ""
    imageUrl: str = ""
    userName: str = ""


class Feedback(BaseModel):
    email: str
    message: str
    type: str = "general"
    createdAt: datetime = Field(default_factory=utcnow)
