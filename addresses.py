import logging
from typing import List

from bson import ObjectId

from database import DocumentStore, canonical_id
from errors import AddressNotFound, NoAddresses
from schemas import Address

log = logging.getLogger(__name__)

HOME = 0
WORK = 1


class AddressService:
    """Address book embedded in the user document.

    The first entry is the home address and the second the work address.
    List order is kept as-is on every write.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def _load(self, user_id: str) -> List[dict]:
        user = self.store.find_user(user_id)
        return list(user.get("address_details") or [])

    def _save(self, user_id: str, addresses: List[dict]) -> None:
        self.store.update_user_fields(user_id, {"address_details": addresses})

    def list(self, user_id: str) -> List[Address]:
        return [Address(**a) for a in self._load(user_id)]

    def add(self, user_id: str, address: Address) -> str:
        addresses = self._load(user_id)
        doc = address.model_dump()
        if not doc["address_id"]:
            doc["address_id"] = str(ObjectId())
        addresses.append(doc)
        self._save(user_id, addresses)
        log.info("Address %s added for user %s", doc["address_id"], user_id)
        return doc["address_id"]

    def _replace(self, addresses: List[dict], index: int, address: Address) -> dict:
        doc = address.model_dump()
        if not doc["address_id"]:
            doc["address_id"] = addresses[index]["address_id"]
        addresses[index] = doc
        return doc

    def edit_home(self, user_id: str, address: Address) -> str:
        addresses = self._load(user_id)
        if not addresses:
            raise NoAddresses()
        doc = self._replace(addresses, HOME, address)
        self._save(user_id, addresses)
        return doc["address_id"]

    def edit_work(self, user_id: str, address: Address) -> str:
        addresses = self._load(user_id)
        if len(addresses) <= WORK:
            # no work slot yet, append creates it
            doc = address.model_dump()
            if not doc["address_id"]:
                doc["address_id"] = str(ObjectId())
            addresses.append(doc)
        else:
            doc = self._replace(addresses, WORK, address)
        self._save(user_id, addresses)
        return doc["address_id"]

    def delete(self, user_id: str, address_id: str) -> None:
        address_id = canonical_id(address_id)
        addresses = self._load(user_id)
        remaining = [a for a in addresses if a.get("address_id") != address_id]
        if len(remaining) == len(addresses):
            raise AddressNotFound()
        self._save(user_id, remaining)
        log.info("Address %s deleted for user %s", address_id, user_id)
