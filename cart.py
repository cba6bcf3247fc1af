"""
Per-user cart embedded in the user document.

Every mutation is one atomic update on the user document, so concurrent
requests for the same user cannot drop each other's changes.
"""
import logging
from typing import Optional

from bson.objectid import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel, Field
from pymongo import ReturnDocument
from pymongo.database import Database

from database import now, parse_object_id, serialize_doc

logger = logging.getLogger(__name__)

# How many times add_item retries after losing a race with a concurrent insert
ADD_ATTEMPTS = 3
# Upper bound for a single add or update; keeps stored quantities far from int64
MAX_QUANTITY = 10_000


# ----------------------- Models -----------------------
class CartAddBody(BaseModel):
    productId: Optional[str] = None
    quantity: Optional[int] = Field(1, le=MAX_QUANTITY)


class CartUpdateBody(BaseModel):
    quantity: Optional[int] = Field(None, le=MAX_QUANTITY)


# ----------------------- Helpers -----------------------
def _check_quantity(quantity: Optional[int]) -> int:
    if quantity is None or quantity < 1:
        raise HTTPException(status_code=400, detail="Quantity must be at least 1")
    return quantity


def _user_exists(db: Database, user_id: ObjectId) -> bool:
    return db["user"].count_documents({"_id": user_id}, limit=1) > 0


def _result(user: Optional[dict], message: str) -> dict:
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": message, "cartCount": len(user.get("cart", []))}


def _update_cart(db: Database, query: dict, update: dict) -> Optional[dict]:
    update.setdefault("$set", {})["updatedAt"] = now()
    return db["user"].find_one_and_update(
        query,
        update,
        projection={"cart": 1},
        return_document=ReturnDocument.AFTER,
    )


# ----------------------- Cart service -----------------------
def get_cart(db: Database, user_id: ObjectId) -> list:
    user = db["user"].find_one({"_id": user_id}, {"cart": 1})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    entries = user.get("cart", [])
    ids = [e["productId"] for e in entries]
    products = {p["_id"]: p for p in db["product"].find({"_id": {"$in": ids}})}

    items = []
    for entry in entries:
        product = products.get(entry["productId"])
        if product is None:
            # product was deleted since it was added
            continue
        items.append({
            "productId": str(entry["productId"]),
            "quantity": entry["quantity"],
            "addedAt": entry["addedAt"].isoformat() if entry.get("addedAt") else None,
            "product": serialize_doc(product),
        })
    return items


def add_item(db: Database, user_id: ObjectId, body: CartAddBody) -> dict:
    pid = parse_object_id(body.productId, "product id")
    quantity = _check_quantity(body.quantity)
    if db["product"].count_documents({"_id": pid}, limit=1) == 0:
        raise HTTPException(status_code=404, detail="Product not found")

    for _ in range(ADD_ATTEMPTS):
        user = _update_cart(
            db,
            {"_id": user_id, "cart.productId": pid},
            {"$inc": {"cart.$.quantity": quantity}},
        )
        if user is not None:
            return _result(user, "Cart item quantity increased")

        entry = {"productId": pid, "quantity": quantity, "addedAt": now()}
        user = _update_cart(
            db,
            {"_id": user_id, "cart.productId": {"$ne": pid}},
            {"$push": {"cart": entry}},
        )
        if user is not None:
            return _result(user, "Item added to cart")

        if not _user_exists(db, user_id):
            raise HTTPException(status_code=404, detail="User not found")
        logger.debug("Concurrent insert of %s for user %s, retrying", pid, user_id)

    raise HTTPException(status_code=409, detail="Cart was modified concurrently, please retry")


def update_item(db: Database, user_id: ObjectId, product_id: str, body: CartUpdateBody) -> dict:
    pid = parse_object_id(product_id, "product id")
    quantity = _check_quantity(body.quantity)
    user = _update_cart(
        db,
        {"_id": user_id, "cart.productId": pid},
        {"$set": {"cart.$.quantity": quantity}},
    )
    if user is None:
        if not _user_exists(db, user_id):
            raise HTTPException(status_code=404, detail="User not found")
        raise HTTPException(status_code=404, detail="Item not found in cart")
    return _result(user, "Cart item updated")


def remove_item(db: Database, user_id: ObjectId, product_id: str) -> dict:
    pid = parse_object_id(product_id, "product id")
    user = _update_cart(db, {"_id": user_id}, {"$pull": {"cart": {"productId": pid}}})
    return _result(user, "Item removed from cart")


def clear_cart(db: Database, user_id: ObjectId) -> dict:
    user = _update_cart(db, {"_id": user_id}, {"$set": {"cart": []}})
    return _result(user, "Cart cleared")
