"""
Database Schemas

MongoDB collection schemas and wire models for the storefront.

Each collection model maps to a collection named after the lowercased class
name:
- Product -> "product" collection
- User -> "user" collection
- Order -> "order" collection
- CustomRequest -> "customrequest" collection

Wire names follow the storefront's JavaScript (camelCase); Python attributes
are snake_case and the models accept either on input.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

OrderStatus = Literal["Pending", "Completed", "Canceled"]


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ImageRef(BaseModel):
    """Blob store reference: both fields set, or both empty."""

    url: str = Field("", description="Public URL of the stored image")
    public_id: str = Field("", description="Handle used to delete the blob")

    @model_validator(mode="after")
    def _all_or_nothing(self):
        if bool(self.url) != bool(self.public_id):
            raise ValueError("image url and public_id must be set together")
        return self

    def __bool__(self) -> bool:
        return bool(self.public_id)


# ------------ Products ------------

class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str = Field(..., min_length=1, description="Product name")
    category: Optional[str] = Field(None, description="Product category")
    price: float = Field(..., ge=0, description="Unit price")
    stock: int = Field(..., ge=0, description="Units in stock")
    image: ImageRef = Field(default_factory=ImageRef)


class ProductOut(Product):
    id: str
    created_at: Optional[datetime] = None


# ------------ Users ------------

class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"

    Local accounts carry a bcrypt hash; accounts created through Google
    sign-in carry google_id and no hash until linked to a local login.
    """
    fullname: str = Field(..., description="Full name")
    username: str = Field(..., description="Unique username")
    email: EmailStr = Field(..., description="Unique email address")
    phone: Optional[str] = None
    password_hash: Optional[str] = Field(None, description="bcrypt hash, never plaintext")
    gender: Optional[str] = None
    role: str = Field("user", description="Role: user | admin")
    is_active: bool = Field(True, description="Whether the account may sign in")
    google_id: Optional[str] = Field(None, description="Google subject identifier")
    picture: Optional[str] = None


class PublicUser(WireModel):
    id: str
    fullname: str
    username: str
    email: str
    phone: Optional[str] = None
    gender: Optional[str] = None
    role: str = "user"
    is_active: bool = Field(True, alias="isActive")
    picture: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "PublicUser":
        return cls(
            id=str(doc["_id"]),
            fullname=doc.get("fullname", ""),
            username=doc.get("username", ""),
            email=doc.get("email", ""),
            phone=doc.get("phone"),
            gender=doc.get("gender"),
            role=doc.get("role", "user"),
            is_active=doc.get("is_active", True),
            picture=doc.get("picture"),
        )


class RegisterRequest(WireModel):
    fullname: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    password: str = Field(..., min_length=1)
    confirm_password: str = Field(..., min_length=1, alias="confirmPassword")
    gender: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserUpdate(WireModel):
    fullname: Optional[str] = Field(None, min_length=1)
    username: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    gender: Optional[str] = None
    role: Optional[Literal["user", "admin"]] = None
    is_active: Optional[bool] = Field(None, alias="isActive")


# ------------ Orders ------------

class OrderItem(WireModel):
    """Line item snapshot taken at checkout time."""

    product_id: Optional[str] = Field(None, alias="productId")
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


class OrderCreate(WireModel):
    full_name: str = Field(..., min_length=1, alias="fullName")
    email: EmailStr
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1, alias="zip")
    transaction_id: str = Field(..., min_length=1, alias="transactionId", description="Opaque payment reference")
    cart_items: List[OrderItem] = Field(..., min_length=1, alias="cartItems")
    total_amount: float = Field(..., ge=0, alias="totalAmount")


class Order(OrderCreate):
    """
    Orders collection schema
    Collection name: "order"

    Line items and total are fixed at creation; only status changes.
    """
    order_id: str = Field(..., alias="orderId")
    status: OrderStatus = "Pending"
    date: datetime
    user_id: Optional[str] = Field(None, alias="userId")


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


# ------------ Custom requests ------------

class CustomRequest(BaseModel):
    """
    Custom product requests collection schema
    Collection name: "customrequest"
    """
    name: str = Field(..., min_length=1)
    email: EmailStr
    product: str = Field(..., min_length=1, description="Free-text description of the wanted product")
    category: Optional[str] = None
    details: Optional[str] = None
    image: ImageRef = Field(default_factory=ImageRef)
