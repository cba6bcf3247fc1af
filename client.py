"""
Client side of the shop API.

``ShopClient`` wraps the REST endpoints. ``ClientState`` mirrors the
server's auth, product and cart state locally, persists the session and
the guest cart in a ``LocalStore`` file, and turns API failures into
notifications instead of exceptions.
"""
import json
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

import requests

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"
CART_KEY = "cart"


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ShopClient:
    def __init__(self, base_url: str = "http://localhost:8000", session=None, token: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.token = token

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = self.session.request(method, f"{self.base_url}/api{path}", headers=headers, **kwargs)
        except requests.RequestException as e:
            raise ApiError(0, f"Network error: {e}")
        try:
            data = resp.json()
        except ValueError:
            data = None
        if resp.status_code >= 400:
            message = data.get("error") if isinstance(data, dict) else None
            raise ApiError(resp.status_code, message or f"Request failed with status {resp.status_code}")
        return data

    # auth
    def signup(self, name: str, email: str, password: str) -> dict:
        return self._request("POST", "/signup", json={"name": name, "email": email, "password": password})

    def login(self, email: str, password: str) -> dict:
        return self._request("POST", "/login", json={"email": email, "password": password})

    def get_profile(self) -> dict:
        return self._request("GET", "/profile")

    def update_profile(self, **fields) -> dict:
        return self._request("PUT", "/profile", json=fields)

    # products
    def list_products(self, min_price=None, max_price=None, category=None, search=None) -> list:
        params = {"minPrice": min_price, "maxPrice": max_price, "category": category, "search": search}
        return self._request("GET", "/products", params={k: v for k, v in params.items() if v is not None})

    def get_product(self, product_id: str) -> dict:
        return self._request("GET", f"/products/{product_id}")

    def create_product(self, **fields) -> dict:
        return self._request("POST", "/products", json=fields)

    def update_product(self, product_id: str, **fields) -> dict:
        return self._request("PUT", f"/products/{product_id}", json=fields)

    def delete_product(self, product_id: str) -> dict:
        return self._request("DELETE", f"/products/{product_id}")

    # cart
    def get_cart(self) -> list:
        return self._request("GET", "/cart")

    def add_to_cart(self, product_id: str, quantity: int = 1) -> dict:
        return self._request("POST", "/cart", json={"productId": product_id, "quantity": quantity})

    def update_cart_item(self, product_id: str, quantity: int) -> dict:
        return self._request("PATCH", f"/cart/{product_id}", json={"quantity": quantity})

    def remove_from_cart(self, product_id: str) -> dict:
        return self._request("DELETE", f"/cart/{product_id}")

    def clear_cart(self) -> dict:
        return self._request("DELETE", "/cart")


class LocalStore:
    """Small JSON file used like browser local storage."""

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path) as f:
            try:
                return json.load(f)
            except ValueError:
                logger.warning("Ignoring unreadable local store %s", self.path)
                return {}

    def _save(self, data: dict):
        with open(self.path, "w") as f:
            json.dump(data, f)

    def get(self, key: str, default=None):
        return self._load().get(key, default)

    def set(self, key: str, value):
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str):
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


class ClientState:
    def __init__(self, api: ShopClient, storage: LocalStore):
        self.api = api
        self.storage = storage
        self.user: Optional[dict] = storage.get(USER_KEY)
        self.token: Optional[str] = storage.get(TOKEN_KEY)
        self.api.token = self.token
        self.products: List[dict] = []
        self.cart: List[dict] = [] if self.token else storage.get(CART_KEY, [])
        self.error: Optional[str] = None
        self.notifications: List[tuple] = []

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token and self.user)

    def notify(self, level: str, message: str):
        self.notifications.append((level, message))
        logger.log(logging.ERROR if level == "error" else logging.INFO, message)

    def _fail(self, err: ApiError, fallback: str):
        self.error = err.message or fallback
        self.notify("error", self.error)

    # ----------------------- Auth -----------------------
    def _start_session(self, data: dict):
        self.token = data["token"]
        self.user = data["user"]
        self.api.token = self.token
        self.error = None
        self.storage.set(TOKEN_KEY, self.token)
        self.storage.set(USER_KEY, self.user)
        self._push_guest_cart()
        self.fetch_cart()

    def login(self, email: str, password: str) -> bool:
        try:
            self._start_session(self.api.login(email, password))
        except ApiError as e:
            self._fail(e, "Login failed")
            return False
        return True

    def signup(self, name: str, email: str, password: str) -> bool:
        try:
            self._start_session(self.api.signup(name, email, password))
        except ApiError as e:
            self._fail(e, "Signup failed")
            return False
        return True

    def logout(self):
        self.token = None
        self.user = None
        self.api.token = None
        self.storage.remove(TOKEN_KEY)
        self.storage.remove(USER_KEY)
        # guest items the server has not accepted yet stay for the next login
        self.cart = self.storage.get(CART_KEY, [])

    def update_profile(self, **fields) -> bool:
        try:
            data = self.api.update_profile(**fields)
        except ApiError as e:
            self._fail(e, "Failed to update profile")
            return False
        self.token = data["token"]
        self.user = data["user"]
        self.api.token = self.token
        self.storage.set(TOKEN_KEY, self.token)
        self.storage.set(USER_KEY, self.user)
        return True

    # ----------------------- Products -----------------------
    def fetch_products(self, **filters) -> List[dict]:
        try:
            self.products = self.api.list_products(**filters)
        except ApiError as e:
            self._fail(e, "Failed to load products")
        return self.products

    def create_product(self, **fields) -> Optional[dict]:
        try:
            product = self.api.create_product(**fields)
        except ApiError as e:
            self._fail(e, "Failed to create product")
            return None
        self.products.insert(0, product)
        return product

    def update_product(self, product_id: str, **fields) -> Optional[dict]:
        try:
            product = self.api.update_product(product_id, **fields)
        except ApiError as e:
            self._fail(e, "Failed to update product")
            return None
        self.products = [product if p["id"] == product_id else p for p in self.products]
        return product

    def delete_product(self, product_id: str) -> bool:
        try:
            self.api.delete_product(product_id)
        except ApiError as e:
            self._fail(e, "Failed to delete product")
            return False
        self.products = [p for p in self.products if p["id"] != product_id]
        return True

    # ----------------------- Cart -----------------------
    def _product_snapshot(self, product_id: str) -> Optional[dict]:
        for p in self.products:
            if p.get("id") == product_id:
                return p
        return None

    def _save_guest_cart(self):
        self.storage.set(CART_KEY, self.cart)

    def _push_guest_cart(self):
        """Send guest items to the server cart, keeping any that may succeed later."""
        kept = []
        for item in self.storage.get(CART_KEY, []):
            try:
                self.api.add_to_cart(item["productId"], item["quantity"])
            except ApiError as e:
                self.notify("error", f"Could not restore cart item: {e.message}")
                # 400/404: the item itself is unusable, e.g. the product is gone
                if e.status_code not in (400, 404):
                    kept.append(item)
        if kept:
            self.storage.set(CART_KEY, kept)
        else:
            self.storage.remove(CART_KEY)

    def fetch_cart(self) -> List[dict]:
        if not self.is_authenticated:
            return self.cart
        try:
            self.cart = self.api.get_cart()
        except ApiError as e:
            self._fail(e, "Failed to load cart")
        return self.cart

    def _server_cart_call(self, call, fallback: str, *args) -> bool:
        try:
            data = call(*args)
        except ApiError as e:
            self._fail(e, fallback)
            return False
        self.notify("success", data.get("message", "Cart updated"))
        self.fetch_cart()
        return True

    def add_to_cart(self, product_id: str, quantity: int = 1) -> bool:
        if self.is_authenticated:
            return self._server_cart_call(self.api.add_to_cart, "Failed to add item to cart", product_id, quantity)
        if quantity < 1:
            self.notify("error", "Quantity must be at least 1")
            return False
        for item in self.cart:
            if item["productId"] == product_id:
                item["quantity"] += quantity
                break
        else:
            self.cart.append({
                "productId": product_id,
                "quantity": quantity,
                "addedAt": datetime.now(timezone.utc).isoformat(),
                "product": self._product_snapshot(product_id),
            })
        self._save_guest_cart()
        self.notify("success", "Added to cart")
        return True

    def update_cart_item(self, product_id: str, quantity: int) -> bool:
        if self.is_authenticated:
            return self._server_cart_call(self.api.update_cart_item, "Failed to update cart", product_id, quantity)
        if quantity < 1:
            self.notify("error", "Quantity must be at least 1")
            return False
        for item in self.cart:
            if item["productId"] == product_id:
                item["quantity"] = quantity
                self._save_guest_cart()
                return True
        self.notify("error", "Item not found in cart")
        return False

    def remove_from_cart(self, product_id: str) -> bool:
        if self.is_authenticated:
            return self._server_cart_call(self.api.remove_from_cart, "Failed to remove item from cart", product_id)
        self.cart = [i for i in self.cart if i["productId"] != product_id]
        self._save_guest_cart()
        return True

    def clear_cart(self) -> bool:
        if self.is_authenticated:
            return self._server_cart_call(self.api.clear_cart, "Failed to clear cart")
        self.cart = []
        self.storage.remove(CART_KEY)
        self.notify("success", "Cart cleared")
        return True

    def cart_total(self) -> int:
        return sum((i.get("product") or {}).get("price", 0) * i["quantity"] for i in self.cart)

    def cart_items_count(self) -> int:
        return sum(i["quantity"] for i in self.cart)
