import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from database import DocumentStore, object_ids
from errors import InvalidQuery
from schemas import MAX_INT64, Product

log = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _parse_int(value, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if not -MAX_INT64 - 1 <= number <= MAX_INT64:
        return default
    return number


class Pagination(BaseModel):
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_query(cls, page=None, page_size=None) -> "Pagination":
        """Lenient parsing: bad or missing values fall back to the defaults."""
        p = _parse_int(page, 1)
        size = _parse_int(page_size, DEFAULT_PAGE_SIZE)
        if p < 1:
            p = 1
        if size < 1:
            size = DEFAULT_PAGE_SIZE
        if size > MAX_PAGE_SIZE:
            size = MAX_PAGE_SIZE
        # skip must still fit in a BSON int64
        p = min(p, MAX_INT64 // size + 1)
        return cls(page=p, page_size=size)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.page_size

    def total_pages(self, total: int) -> int:
        return -(-total // self.page_size)


def _parse_price(value, name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        price = int(value)
    except (TypeError, ValueError):
        raise InvalidQuery(f"{name} must be a valid number")
    if price < 0 or price > MAX_INT64:
        raise InvalidQuery(f"{name} must be a valid number")
    return price


def name_filter(substring: str) -> Dict[str, Any]:
    return {"product_name": {"$regex": re.escape(substring), "$options": "i"}}


class CatalogService:
    def __init__(self, store: DocumentStore):
        self.store = store

    def _exclude_sold(self, filter_dict: Dict[str, Any]) -> Dict[str, Any]:
        sold = self.store.sold_product_ids()
        if not sold:
            return filter_dict
        exclusion = {"_id": {"$nin": object_ids(sold)}}
        if not filter_dict:
            return exclusion
        return {"$and": [filter_dict, exclusion]}

    def _page(self, filter_dict, pagination: Pagination) -> Tuple[List[dict], int]:
        filter_dict = self._exclude_sold(filter_dict)
        total = self.store.count_products(filter_dict)
        items = self.store.find_products(filter_dict, skip=pagination.skip, limit=pagination.page_size)
        return items, total

    def list_products(self, pagination: Pagination) -> Tuple[List[dict], int]:
        return self._page({}, pagination)

    def search_by_name(self, substring: str) -> List[dict]:
        return self.store.find_products(self._exclude_sold(name_filter(substring)))

    def search_by_name_and_price(self, substring: Optional[str] = None, min_price=None, max_price=None,
                                 pagination: Optional[Pagination] = None) -> Tuple[List[dict], int]:
        if not substring and min_price in (None, "") and max_price in (None, ""):
            raise InvalidQuery("at least one search parameter is required (search, min_price, or max_price)")
        low = _parse_price(min_price, "min_price")
        high = _parse_price(max_price, "max_price")
        if low is not None and high is not None and low > high:
            raise InvalidQuery("min_price must be less than or equal to max_price")

        conditions = []
        if substring:
            conditions.append(name_filter(substring))
        price = {}
        if low is not None:
            price["$gte"] = low
        if high is not None:
            price["$lte"] = high
        if price:
            conditions.append({"price": price})
        filter_dict = conditions[0] if len(conditions) == 1 else {"$and": conditions}
        return self._page(filter_dict, pagination or Pagination())

    def add_product(self, product: Product) -> str:
        product_id = self.store.insert_product(product)
        log.info("Product %s added: %s", product_id, product.product_name)
        return product_id
