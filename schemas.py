"""
Database Schemas

MongoDB collection schemas and request bodies, defined as Pydantic models.
Model name is converted to lowercase for the collection name:
- User -> "user" collection
- Product -> "product" collection

Cart lines, orders and addresses are embedded in the user document.
Prices are integers in the currency's minor unit.
"""

from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator

MAX_INT64 = 2 ** 63 - 1


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    product_name: str = Field(..., min_length=1, description="Product name")
    price: int = Field(..., ge=0, le=MAX_INT64, description="Price in minor currency units")
    rating: int = Field(0, ge=0, le=5, description="Rating 0-5")
    image: Optional[str] = Field(None, description="Image reference")


class CartLine(BaseModel):
    """Snapshot of a product taken when it was added to the cart."""
    product_id: str
    product_name: str
    price: int = Field(..., ge=0)
    rating: int = 0
    image: Optional[str] = None

    @classmethod
    def from_product(cls, doc: dict) -> "CartLine":
        return cls(
            product_id=str(doc["_id"]),
            product_name=doc["product_name"],
            price=int(doc["price"]),
            rating=int(doc.get("rating") or 0),
            image=doc.get("image"),
        )


class Payment(BaseModel):
    digital: bool = False
    cod: bool = False

    @model_validator(mode="after")
    def one_method(self):
        if self.digital and self.cod:
            raise ValueError("choose either digital or cod, not both")
        if not self.digital and not self.cod:
            self.cod = True
        return self


class Order(BaseModel):
    order_id: str
    order_cart: List[CartLine] = Field(default_factory=list)
    ordered_at: datetime
    price: int = Field(..., ge=0, description="Sum of cart line prices")
    discount: int = 0
    payment_method: Payment = Field(default_factory=Payment)


class Address(BaseModel):
    address_id: Optional[str] = Field(None, description="ObjectId hex, assigned when missing")
    house: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    pincode: Optional[str] = None

    @field_validator("address_id")
    @classmethod
    def valid_object_id(cls, v):
        if v is not None and not ObjectId.is_valid(v):
            raise ValueError("address_id must be a 24 character hex string")
        return str(ObjectId(v)) if v is not None else v


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    first_name: str = Field(..., min_length=2, max_length=30)
    last_name: str = Field(..., min_length=2, max_length=30)
    email: EmailStr = Field(..., description="Email address, unique")
    phone: str = Field(..., description="Phone number, unique")
    password: str = Field(..., description="Password hash (server-side)")
    is_admin: bool = False
    token: Optional[str] = None
    refresh_token: Optional[str] = None
    address_details: List[Address] = Field(default_factory=list)
    user_cart: List[CartLine] = Field(default_factory=list)
    order_status: List[Order] = Field(default_factory=list)


# --------------------- Request bodies ---------------------

class SignupRequest(BaseModel):
    first_name: str = Field(..., min_length=2, max_length=30)
    last_name: str = Field(..., min_length=2, max_length=30)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
