from bson import ObjectId

from store import order_history_pipeline


def test_place_order_stores_body_verbatim(auth_client, db):
    order = {
        "plantId": str(ObjectId()),
        "customer": {"email": "buyer@example.com", "name": "Buyer"},
        "quantity": 2,
        "price": 50,
        "status": "pending",
    }

    response = auth_client.post("/order", json=order)

    assert response.status_code == 200
    saved = db.orders.find_one({"_id": ObjectId(response.get_json()["insertedId"])})
    saved.pop("_id")
    assert saved == order


def test_cancel_pending_order_deletes_it(auth_client, db):
    order_id = db.orders.insert_one({"status": "pending"}).inserted_id

    response = auth_client.delete(f"/order/{order_id}")

    assert response.status_code == 200
    assert response.get_json() == {"acknowledged": True, "deletedCount": 1}
    assert db.orders.find_one({"_id": order_id}) is None


def test_cancel_delivered_order_conflicts(auth_client, db):
    order_id = db.orders.insert_one({"status": "delivered"}).inserted_id

    response = auth_client.delete(f"/order/{order_id}")

    assert response.status_code == 409
    assert response.mimetype == "text/plain"
    assert response.get_data(as_text=True) == "Can not cancel once the product is delivered"
    assert db.orders.find_one({"_id": order_id}) is not None


def test_cancel_unknown_order(auth_client):
    response = auth_client.delete(f"/order/{ObjectId()}")

    assert response.status_code == 404
    assert response.get_json() == {"message": "Order not found."}


def test_cancel_does_not_restock_plant(auth_client, db):
    plant_id = db.plants.insert_one({"name": "Fern", "quantity": 4}).inserted_id
    order_id = db.orders.insert_one({"plantId": str(plant_id), "status": "pending"}).inserted_id

    auth_client.delete(f"/order/{order_id}")

    assert db.plants.find_one({"_id": plant_id})["quantity"] == 4


def test_order_history_pipeline_joins_plant_fields():
    pipeline = order_history_pipeline("buyer@example.com")

    assert pipeline[0] == {"$match": {"customer.email": "buyer@example.com"}}
    conversion = pipeline[1]["$addFields"]["plantId"]["$convert"]
    assert conversion["to"] == "objectId"
    assert conversion["onError"] is None
    assert pipeline[2]["$lookup"] == {
        "from": "plants",
        "localField": "plantId",
        "foreignField": "_id",
        "as": "plants",
    }
    assert pipeline[3] == {"$unwind": "$plants"}
    assert pipeline[4]["$addFields"] == {
        "name": "$plants.name",
        "image": "$plants.image",
        "category": "$plants.category",
    }
    assert pipeline[-1] == {"$project": {"plants": 0}}
