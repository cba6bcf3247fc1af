import logging
import re
from typing import Optional

from bson.objectid import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel, Field
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import create_document, now, parse_object_id, serialize_doc
from schemas import MAX_PRICE, Product as ProductSchema

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "price", "category", "description", "imageUrl")


# ----------------------- Models -----------------------
class ProductCreateBody(ProductSchema):
    pass


class ProductUpdateBody(BaseModel):
    name: Optional[str] = None
    price: Optional[int] = Field(None, ge=0, le=MAX_PRICE)
    category: Optional[str] = None
    description: Optional[str] = None
    imageUrl: Optional[str] = None


# ----------------------- Queries -----------------------
def build_filter(
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
) -> dict:
    """Translate list query parameters into a MongoDB filter."""
    filt = {}
    price = {}
    if min_price is not None:
        price["$gte"] = min_price
    if max_price is not None:
        price["$lte"] = max_price
    if price:
        filt["price"] = price
    if category:
        filt["category"] = {"$regex": re.escape(category), "$options": "i"}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        filt["$or"] = [{"name": pattern}, {"description": pattern}]
    return filt


def list_products(db: Database, **filters) -> list:
    items = db["product"].find(build_filter(**filters)).sort("createdAt", DESCENDING)
    return [serialize_doc(i) for i in items]


def get_product(db: Database, product_id: str) -> dict:
    item = db["product"].find_one({"_id": parse_object_id(product_id, "product id")})
    if not item:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize_doc(item)


# ----------------------- Mutations -----------------------
def create_product(db: Database, body: ProductCreateBody, user: dict) -> dict:
    doc = body.model_dump()
    doc["createdBy"] = user.get("userId")
    pid = create_document(db, "product", doc)
    logger.info("Product %s created by %s", pid, user.get("email"))
    return serialize_doc(db["product"].find_one({"_id": ObjectId(pid)}))


def update_product(db: Database, product_id: str, body: ProductUpdateBody, user: dict) -> dict:
    oid = parse_object_id(product_id, "product id")
    update = {k: v for k, v in body.model_dump(exclude_none=True).items() if k in UPDATABLE_FIELDS}
    if not update:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    update["updatedAt"] = now()
    update["updatedBy"] = user.get("userId")
    item = db["product"].find_one_and_update(
        {"_id": oid},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if not item:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info("Product %s updated by %s", product_id, user.get("email"))
    return serialize_doc(item)


def delete_product(db: Database, product_id: str, user: dict) -> dict:
    res = db["product"].delete_one({"_id": parse_object_id(product_id, "product id")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info("Product %s deleted by %s", product_id, user.get("email"))
    return {"message": "Product deleted successfully"}


# ----------------------- Seed Demo Data -----------------------
DEMO_PRODUCTS = [
    {
        "name": "Canvas Backpack",
        "description": "Water-resistant 20L daypack with a padded laptop sleeve.",
        "price": 5999,
        "category": "Bags",
        "imageUrl": "https://images.unsplash.com/photo-1553062407-98eeb64c6a62",
    },
    {
        "name": "Ceramic Pour-Over Set",
        "description": "Dripper, carafe and two cups for slow morning coffee.",
        "price": 3450,
        "category": "Kitchen",
        "imageUrl": "https://images.unsplash.com/photo-1495474472287-4d71bcdd2085",
    },
    {
        "name": "Wireless Earbuds",
        "description": "Noise isolating earbuds with a 24h charging case.",
        "price": 8900,
        "category": "Electronics",
        "imageUrl": "https://images.unsplash.com/photo-1590658268037-6bf12165a8df",
    },
    {
        "name": "Linen Shirt",
        "description": "Breathable relaxed-fit shirt for warm days.",
        "price": 4200,
        "category": "Clothing",
        "imageUrl": "https://images.unsplash.com/photo-1596755094514-f87e34085b2c",
    },
    {
        "name": "Desk Lamp",
        "description": "Dimmable LED lamp with adjustable arm.",
        "price": 2999,
        "category": "Home",
        "imageUrl": "https://images.unsplash.com/photo-1507473885765-e6ed057f782c",
    },
]


def seed_products(db: Database, user: dict) -> dict:
    if db["product"].count_documents({}) > 0:
        return {"seeded": False, "products": db["product"].count_documents({})}
    for p in DEMO_PRODUCTS:
        create_product(db, ProductCreateBody(**p), user)
    logger.info("Seeded %d demo products", len(DEMO_PRODUCTS))
    return {"seeded": True, "products": db["product"].count_documents({})}
