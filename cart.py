"""
Cart & Order Engine

Cart lines and orders live inside the user document. Every mutation loads the
user, changes the lists in memory and writes them back with one $set, so only
the write itself is atomic. Two checkouts of the same product can both pass
the sold check if they interleave; that window is accepted.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from bson import ObjectId

from database import DocumentStore, canonical_id, utcnow
from errors import (
    AlreadySold, DuplicateInCart, EmptyCart, ItemNotFound, PersistError, StoreError, UserNotFound,
)
from schemas import CartLine, Order, Payment

log = logging.getLogger(__name__)

RESUBMIT_WINDOW = timedelta(seconds=10)


def _aware(value: datetime) -> datetime:
    # pymongo hands back naive UTC unless the client is tz_aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CartService:
    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def add_to_cart(self, user_id: str, product_id: str) -> str:
        product_id = canonical_id(product_id)
        product = self.store.find_product_by_id(product_id)
        user = self.store.find_user(user_id)

        cart = user.get("user_cart") or []
        if any(line["product_id"] == product_id for line in cart):
            raise DuplicateInCart()

        line = CartLine.from_product(product)
        cart.append(line.model_dump())
        try:
            result = self.store.update_user_fields(user_id, {"user_cart": cart})
        except (StoreError, UserNotFound) as e:
            raise PersistError("failed to update cart") from e
        if result.modified_count == 0:
            raise PersistError("failed to update cart")
        log.info("User %s added product %s to cart", user_id, product_id)
        return line.product_id

    def remove_from_cart(self, user_id: str, product_id: str) -> None:
        product_id = canonical_id(product_id)
        user = self.store.find_user(user_id)
        cart = user.get("user_cart") or []
        remaining = [line for line in cart if line["product_id"] != product_id]
        if len(remaining) == len(cart):
            raise ItemNotFound()
        try:
            self.store.update_user_fields(user_id, {"user_cart": remaining})
        except StoreError as e:
            raise PersistError("failed to remove item from cart") from e
        log.info("User %s removed product %s from cart", user_id, product_id)

    def get_cart(self, user_id: str) -> List[CartLine]:
        user = self.store.find_user(user_id)
        return [CartLine(**line) for line in user.get("user_cart") or []]

    def list_orders(self, user_id: str) -> List[Order]:
        user = self.store.find_user(user_id)
        return [Order(**order) for order in user.get("order_status") or []]

    def _check_not_sold(self, product_ids) -> None:
        sold = self.store.sold_product_ids()
        for product_id in product_ids:
            if product_id in sold:
                log.warning("Product %s has already been sold", product_id)
                raise AlreadySold()

    def _new_order(self, lines: List[CartLine], payment: Optional[Payment]) -> Order:
        return Order(
            order_id=str(ObjectId()),
            order_cart=lines,
            ordered_at=self.clock(),
            price=sum(line.price for line in lines),
            discount=0,
            payment_method=payment or Payment(cod=True),
        )

    def checkout(self, user_id: str, payment: Optional[Payment] = None) -> Tuple[str, int]:
        user = self.store.find_user(user_id)
        cart = [CartLine(**line) for line in user.get("user_cart") or []]
        orders = user.get("order_status") or []

        if not cart:
            if orders:
                last = orders[-1]
                if self.clock() - _aware(last["ordered_at"]) < RESUBMIT_WINDOW:
                    log.info("Duplicate checkout for user %s, returning order %s", user_id, last["order_id"])
                    return last["order_id"], last["price"]
            raise EmptyCart()

        self._check_not_sold(line.product_id for line in cart)

        order = self._new_order(cart, payment)
        orders.append(order.model_dump())
        try:
            self.store.update_user_fields(user_id, {"user_cart": [], "order_status": orders})
        except StoreError as e:
            raise PersistError("failed to process order") from e
        log.info("Order %s placed by user %s for %d", order.order_id, user_id, order.price)
        return order.order_id, order.price

    def instant_buy(self, user_id: str, product_id: str, payment: Optional[Payment] = None) -> Tuple[str, int]:
        product_id = canonical_id(product_id)
        self._check_not_sold([product_id])
        product = self.store.find_product_by_id(product_id)
        user = self.store.find_user(user_id)

        order = self._new_order([CartLine.from_product(product)], payment)
        orders = user.get("order_status") or []
        orders.append(order.model_dump())
        try:
            self.store.update_user_fields(user_id, {"order_status": orders})
        except StoreError as e:
            raise PersistError("failed to process order") from e
        log.info("Instant buy order %s placed by user %s for %d", order.order_id, user_id, order.price)
        return order.order_id, order.price
