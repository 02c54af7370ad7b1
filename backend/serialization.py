from datetime import datetime
from typing import Any, Dict

from bson import ObjectId
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult


def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


def serialize_document(document):
    if document is None:
        return None
    return serialize_value(document)


# Result payloads keep the driver's camelCase keys that the storefront reads.

def serialize_insert_result(result: InsertOneResult) -> Dict[str, Any]:
    return {
        "acknowledged": result.acknowledged,
        "insertedId": serialize_value(result.inserted_id),
    }


def serialize_update_result(result: UpdateResult) -> Dict[str, Any]:
    return {
        "acknowledged": result.acknowledged,
        "matchedCount": result.matched_count,
        "modifiedCount": result.modified_count,
        "upsertedId": serialize_value(result.upserted_id),
    }


def serialize_delete_result(result: DeleteResult) -> Dict[str, Any]:
    return {
        "acknowledged": result.acknowledged,
        "deletedCount": result.deleted_count,
    }
