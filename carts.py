"""
Per-user carts and purchase history.

Files live in <data_dir>/carts: `<userId>.json` holds the working cart and
`<userId>_history.json` the append-only list of purchases. A missing file
means an empty cart or an empty history. Checkout locks the cart first and
the history second, never the other way round.
"""

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from database import JsonStore, check_safe_id, parse_record
from errors import CheckoutIncomplete, EmptyCart, InvalidQuantity, StorageError
from logger import logger
from schemas import Cart, CartItem, Product, Purchase

CARTS_DIR = "carts"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def empty_cart(user_id: str) -> Cart:
    now = _now()
    return Cart(user_id=user_id, items=[], created_at=now, updated_at=now)


def cart_total(cart: Cart) -> float:
    return round(sum(item.price * item.quantity for item in cart.items), 2)


class CartStore:
    def __init__(self, store: JsonStore):
        self.store = store
        self.carts_dir = store.path(CARTS_DIR)

    def initialize(self) -> None:
        self.store.ensure_dir(self.carts_dir)

    def cart_path(self, user_id: str) -> Path:
        return self.carts_dir / f"{check_safe_id(user_id)}.json"

    def history_path(self, user_id: str) -> Path:
        return self.carts_dir / f"{check_safe_id(user_id)}_history.json"

    def get_cart(self, user_id: str) -> Cart:
        path = self.cart_path(user_id)
        doc = self.store.load(path, default=None, expect=dict)
        if doc is None:
            return empty_cart(user_id)
        return parse_record(Cart, doc, path)

    def _save(self, cart: Cart) -> Cart:
        cart.updated_at = _now()
        self.store.save(self.cart_path(cart.user_id), cart.to_document())
        return cart

    def add_item(self, user_id: str, product: Product, quantity: int = 1) -> Cart:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidQuantity()

        with self.store.locked(self.cart_path(user_id)):
            cart = self.get_cart(user_id)
            existing = next((i for i in cart.items if i.product_id == product.id), None)
            if existing is not None:
                existing.quantity += quantity
            else:
                # Snapshot name/price/image; later catalog edits do not reach carts.
                cart.items.append(CartItem(
                    product_id=product.id,
                    name=product.name,
                    price=product.price,
                    image=product.image,
                    quantity=quantity,
                ))
            self._save(cart)

        logger.info(
            "Cart item added",
            extra={"user_id": user_id, "product_id": product.id, "quantity": quantity},
        )
        return cart

    def remove_item(self, user_id: str, product_id: str) -> Cart:
        with self.store.locked(self.cart_path(user_id)):
            cart = self.get_cart(user_id)
            kept = [i for i in cart.items if i.product_id != product_id]
            if len(kept) == len(cart.items):
                return cart
            cart.items = kept
            self._save(cart)

        logger.info("Cart item removed", extra={"user_id": user_id, "product_id": product_id})
        return cart

    def clear(self, user_id: str) -> Cart:
        with self.store.locked(self.cart_path(user_id)):
            cart = self._save(empty_cart(user_id))
        logger.info("Cart cleared", extra={"user_id": user_id})
        return cart

    def checkout(self, user_id: str) -> Purchase:
        """Move the current cart into the purchase history.

        The history append and the cart reset are two separate writes. If
        the reset fails the purchase stays recorded and CheckoutIncomplete
        is raised so the caller does not retry blindly.
        """
        with self.store.locked(self.cart_path(user_id)):
            cart = self.get_cart(user_id)
            if not cart.items:
                raise EmptyCart()

            purchase = Purchase(
                id=uuid.uuid4().hex,
                user_id=cart.user_id,
                items=cart.items,
                created_at=cart.created_at,
                updated_at=cart.updated_at,
                total=cart_total(cart),
                purchased_at=_now(),
            )
            with self.store.update(self.history_path(user_id), default=[], expect=list) as history:
                history.append(purchase.to_document())

            try:
                self.clear(user_id)
            except StorageError as e:
                logger.error(
                    "Checkout recorded but cart not cleared",
                    extra={"user_id": user_id, "purchase_id": purchase.id},
                )
                raise CheckoutIncomplete(purchase.id) from e

        logger.info(
            "Checkout completed",
            extra={"user_id": user_id, "purchase_id": purchase.id, "total": purchase.total},
        )
        return purchase

    def get_history(self, user_id: str) -> List[Purchase]:
        path = self.history_path(user_id)
        docs = self.store.load(path, default=[], expect=list)
        return [parse_record(Purchase, doc, path) for doc in docs]
