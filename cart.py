"""
Client-side shopping cart.

The cart lives with the shopper, not on the server. Every mutation writes a
snapshot ``{"items": [...], "count": n}`` to the client's local storage under
CART_STORAGE_KEY so a restart restores it exactly; emptying the cart removes
the entry. ``Cart.checkout`` hands the structured line items to the
storefront API through ``StorefrontClient``.

Usage:
    client = StorefrontClient("http://localhost:8000")
    client.login("ana@example.com", "secret")
    cart = Cart(JsonFileStorage("~/.artistgrade/storage.json"))
    cart.add_item({"id": "66f...", "name": "Brush set", "price": 12.5})
    order_id = cart.checkout(client, customer, transaction_id="pay_123")
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from config import HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "cart"
EMPTY_CART_PLACEHOLDER = "Your cart is empty"


class EmptyCartError(Exception):
    """Checkout was attempted with nothing in the cart."""

    def __init__(self, message: str = "Your cart is empty. Please add items before proceeding to payment."):
        super().__init__(message)


class CheckoutError(Exception):
    """The order could not be submitted; the cart is unchanged."""

    def __init__(self, message: str = "Checkout error. Please try again."):
        super().__init__(message)


class CartItem(BaseModel):
    product_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity

    def to_line_item(self) -> dict:
        return {"productId": self.product_id, "name": self.name, "price": self.price, "quantity": self.quantity}


# --------------------- Local storage ---------------------

class CartStorage:
    """Key/value store with the same shape as browser localStorage."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(CartStorage):
    def __init__(self):
        self.data: Dict[str, str] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def remove(self, key):
        self.data.pop(key, None)


class JsonFileStorage(CartStorage):
    def __init__(self, path: str):
        self.path = os.path.expanduser(path)

    def _read(self) -> Dict[str, str]:
        try:
            with open(self.path, encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError:
            return {}
        except ValueError:
            logger.warning("Ignoring unreadable storage file %s", self.path)
            return {}

    def _write(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(data, fh)
        os.replace(tmp, self.path)

    def get(self, key):
        return self._read().get(key)

    def set(self, key, value):
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key):
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


# --------------------- API client ---------------------

class StorefrontClient:
    """Thin httpx wrapper that keeps the session cookie between calls."""

    def __init__(self, base_url: str = "", timeout: float = HTTP_TIMEOUT_SECONDS,
                 transport: Optional[httpx.BaseTransport] = None, client: Optional[httpx.Client] = None):
        self.http = client or httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def login(self, email: str, password: str) -> dict:
        response = self.http.post("/login", json={"email": email, "password": password})
        response.raise_for_status()
        return response.json()

    def current_user(self) -> Optional[dict]:
        response = self.http.get("/api/current_user")
        response.raise_for_status()
        return response.json()

    def list_products(self) -> List[dict]:
        response = self.http.get("/api/products")
        response.raise_for_status()
        return response.json()

    def submit_order(self, payload: dict) -> str:
        response = self.http.post("/api/orders", json=payload)
        response.raise_for_status()
        return response.json()["orderId"]

    def logout(self) -> None:
        self.http.get("/logout", follow_redirects=False)
        self.http.cookies.clear()

    def close(self) -> None:
        self.http.close()


# --------------------- Cart ---------------------

def _product_fields(product: Any) -> tuple:
    if isinstance(product, dict):
        return str(product.get("id") or product.get("_id")), product["name"], float(product["price"])
    return str(product.id), product.name, float(product.price)


class Cart:
    def __init__(self, storage: Optional[CartStorage] = None, key: str = CART_STORAGE_KEY):
        self.storage = storage or MemoryStorage()
        self.key = key
        self.items: List[CartItem] = []
        self._restore()

    def _restore(self) -> None:
        raw = self.storage.get(self.key)
        if not raw:
            return
        try:
            snapshot = json.loads(raw)
            self.items = [CartItem(**item) for item in snapshot.get("items", [])]
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Discarding unreadable cart snapshot: %s", e)
            self.items = []

    def _persist(self) -> None:
        if not self.items:
            self.storage.remove(self.key)
            return
        snapshot = {"items": [item.model_dump() for item in self.items], "count": self.count}
        self.storage.set(self.key, json.dumps(snapshot))

    @property
    def count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total(self) -> float:
        return round(sum(item.subtotal for item in self.items), 2)

    def is_empty(self) -> bool:
        return not self.items

    def get(self, product_id: str) -> Optional[CartItem]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def add_item(self, product: Any, quantity: int = 1) -> CartItem:
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        product_id, name, price = _product_fields(product)
        item = self.get(product_id)
        if item:
            item.quantity += quantity
        else:
            item = CartItem(product_id=product_id, name=name, price=price, quantity=quantity)
            self.items.append(item)
        self._persist()
        return item

    def remove_item(self, product_id: str) -> bool:
        before = len(self.items)
        self.items = [item for item in self.items if item.product_id != product_id]
        removed = len(self.items) != before
        if removed:
            self._persist()
        return removed

    def clear(self) -> None:
        self.items = []
        self.storage.remove(self.key)

    def render(self) -> List[str]:
        if not self.items:
            return [EMPTY_CART_PLACEHOLDER]
        return [f"{item.name} x{item.quantity} - {item.subtotal:.2f}" for item in self.items]

    def checkout(self, client: StorefrontClient, customer: dict, transaction_id: str) -> str:
        """Submit the cart as an order and return its id.

        ``customer`` holds the wire fields fullName, email, phone, address,
        city, state and zip.
        """
        if self.is_empty():
            raise EmptyCartError()
        payload = {
            **customer,
            "transactionId": transaction_id,
            "cartItems": [item.to_line_item() for item in self.items],
            "totalAmount": self.total,
        }
        try:
            order_id = client.submit_order(payload)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning("Checkout failed: %s", e)
            raise CheckoutError() from e
        self.clear()
        return order_id
