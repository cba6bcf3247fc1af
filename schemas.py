"""
Database Schemas for the shop

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
"""
from typing import List, Literal

from pydantic import BaseModel, Field

# Largest integer price that round-trips through BSON int64 and JSON clients
MAX_PRICE = 2 ** 53


class User(BaseModel):
    name: str = Field(..., description="Full name, title-cased")
    email: str = Field(..., description="Lowercased, unique")
    passwordHash: str = Field(..., description="bcrypt hash")
    role: Literal["user", "admin"] = "user"
    cart: List[dict] = Field([], description="Embedded cart: productId, quantity, addedAt")


class Product(BaseModel):
    name: str
    description: str = ""
    price: int = Field(..., ge=0, le=MAX_PRICE, description="Price in minor currency units")
    category: str
    imageUrl: str = ""
