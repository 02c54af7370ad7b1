import time
from typing import Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId

from errors import ConflictError, NotFoundError, ValidationError

PLANT_LIST_LIMIT = 20
DELIVERED_STATUS = "delivered"
DEFAULT_USER_ROLE = "customer"


def parse_object_id(value, label: str = "resource") -> ObjectId:
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label} identifier.")


def now_ms() -> int:
    return int(time.time() * 1000)


def order_history_pipeline(email: str) -> List[Dict]:
    """Orders placed by ``email``, each carrying its plant's display fields.

    ``plantId`` is stored as a string; a value that does not convert to an
    ObjectId becomes null and, like an id with no matching plant, leaves the
    lookup empty so the unwind drops the order.
    """
    return [
        {"$match": {"customer.email": email}},
        {
            "$addFields": {
                "plantId": {
                    "$convert": {
                        "input": "$plantId",
                        "to": "objectId",
                        "onError": None,
                        "onNull": None,
                    }
                }
            }
        },
        {
            "$lookup": {
                "from": "plants",
                "localField": "plantId",
                "foreignField": "_id",
                "as": "plants",
            }
        },
        {"$unwind": "$plants"},
        {
            "$addFields": {
                "name": "$plants.name",
                "image": "$plants.image",
                "category": "$plants.category",
            }
        },
        {"$project": {"plants": 0}},
    ]


class PlantStore:
    """Data access for the users, plants and orders collections."""

    def __init__(self, db):
        self.db = db
        self.users = db.users
        self.plants = db.plants
        self.orders = db.orders

    # Users

    def find_user(self, email: str) -> Optional[Dict]:
        return self.users.find_one({"email": email})

    def upsert_user(self, email: str, user: Dict):
        """Return ``(existing_user, None)`` or ``(None, insert_result)``."""
        existing = self.find_user(email)
        if existing:
            return existing, None
        result = self.users.insert_one(
            {
                **user,
                "email": email,
                "role": DEFAULT_USER_ROLE,
                "timestamp": now_ms(),
            }
        )
        return None, result

    # Plants

    def add_plant(self, plant: Dict):
        return self.plants.insert_one(plant)

    def list_plants(self) -> List[Dict]:
        return list(self.plants.find().limit(PLANT_LIST_LIMIT))

    def get_plant(self, plant_id: str) -> Optional[Dict]:
        return self.plants.find_one({"_id": parse_object_id(plant_id, "plant")})

    def adjust_quantity(self, plant_id: str, amount: int, status: Optional[str]):
        object_id = parse_object_id(plant_id, "plant")
        if status == "increase":
            result = self.plants.update_one({"_id": object_id}, {"$inc": {"quantity": amount}})
            if not result.matched_count:
                raise NotFoundError("Plant not found.")
            return result

        # Decrement only while enough stock remains.
        result = self.plants.update_one(
            {"_id": object_id, "quantity": {"$gte": amount}},
            {"$inc": {"quantity": -amount}},
        )
        if not result.matched_count:
            if self.plants.find_one({"_id": object_id}, {"_id": 1}) is None:
                raise NotFoundError("Plant not found.")
            raise ConflictError("Not enough plants in stock.")
        return result

    # Orders

    def place_order(self, order: Dict):
        return self.orders.insert_one(order)

    def order_history(self, email: str) -> List[Dict]:
        return list(self.orders.aggregate(order_history_pipeline(email)))

    def cancel_order(self, order_id: str):
        object_id = parse_object_id(order_id, "order")
        order = self.orders.find_one({"_id": object_id})
        if order is None:
            raise NotFoundError("Order not found.")
        if order.get("status") == DELIVERED_STATUS:
            raise ConflictError(
                "Can not cancel once the product is delivered", plain_text=True
            )
        return self.orders.delete_one({"_id": object_id})
