"""
Record and request schemas for the shop backend.

Records are stored as JSON documents under the data directory:
- User     -> users.json (one list for all users)
- Product  -> products.json (one list for all products)
- Cart     -> carts/<userId>.json
- Purchase -> carts/<userId>_history.json (append-only list)

Field names are camelCase on the wire and on disk (`isActive`, `createdAt`),
snake_case in Python.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"


class Principal(CamelModel):
    id: str
    name: str
    role: Role


# Users

class UserPublic(CamelModel):
    id: str
    name: str = Field(..., description="Unique login name")
    email: Optional[EmailStr] = Field(None, description="Email address")
    role: Role = Role.USER


class User(UserPublic):
    password_hash: str = Field(..., description="BCrypt password hash")

    def public(self) -> UserPublic:
        return UserPublic(id=self.id, name=self.name, email=self.email, role=self.role)


class UserCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    role: Role = Role.USER


class LoginRequest(CamelModel):
    name: str
    password: str


class TokenResponse(CamelModel):
    token: str


# Catalog

class Product(CamelModel):
    id: str
    name: str
    cost: float = Field(..., ge=0, description="Purchase cost")
    price: float = Field(..., ge=0, description="Sale price")
    image: Optional[str] = Field(None, description="Image URL")
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class ProductCreate(CamelModel):
    name: str = Field(..., min_length=1)
    cost: float = Field(..., ge=0)
    price: float = Field(..., ge=0)
    image: Optional[str] = None


class ProductUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    cost: Optional[float] = Field(None, ge=0)
    price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None
    is_active: Optional[bool] = None


# Cart

class CartItem(CamelModel):
    product_id: str
    name: str
    price: float
    image: Optional[str] = None
    quantity: int = Field(1, ge=1)


class Cart(CamelModel):
    user_id: str
    items: List[CartItem] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class Purchase(Cart):
    id: str
    total: float
    purchased_at: datetime


class AddItemRequest(CamelModel):
    product_id: str
    quantity: int = Field(1, ge=1, strict=True)
