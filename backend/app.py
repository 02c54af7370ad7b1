import os
import time
from datetime import timedelta
from typing import Dict, Mapping, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from flask_cors import CORS
from flask_jwt_extended import (
    JWTManager,
    create_access_token,
    get_jwt,
    jwt_required,
    set_access_cookies,
    unset_jwt_cookies,
)
from flask_pymongo import PyMongo

from errors import UnauthorizedError, ValidationError, register_error_handlers
from serialization import (
    serialize_delete_result,
    serialize_document,
    serialize_insert_result,
    serialize_update_result,
)
from store import PlantStore

load_dotenv()

DEFAULT_DB_NAME = "plantNet-session"
DEFAULT_CORS_ORIGINS = ["http://localhost:5173", "http://localhost:5174"]
SESSION_COOKIE_NAME = "token"
SESSION_LIFETIME = timedelta(days=365)


def build_mongo_uri() -> str:
    explicit_uri = (os.getenv("MONGO_URI") or "").strip()
    if explicit_uri:
        return explicit_uri

    db_user = (os.getenv("DB_USER") or "").strip()
    db_pass = (os.getenv("DB_PASS") or "").strip()
    db_name = (os.getenv("DB_NAME") or DEFAULT_DB_NAME).strip()
    if db_user and db_pass:
        cluster_host = (
            os.getenv("DB_CLUSTER_HOST", "cluster0.wnw5g.mongodb.net")
            or "cluster0.wnw5g.mongodb.net"
        ).strip()
        return (
            f"mongodb+srv://{quote_plus(db_user)}:{quote_plus(db_pass)}@{cluster_host}/"
            f"{db_name}?retryWrites=true&w=majority&appName=Cluster0"
        )
    return f"mongodb://localhost:27017/{db_name}"


def is_production_mode(mode: Optional[str]) -> bool:
    return str(mode or "").strip().lower() == "production"


def create_app(config: Optional[Mapping] = None, db=None) -> Flask:
    """Create and configure the Flask application.

    ``db`` is the database handle every route talks to. When omitted one is
    opened through Flask-PyMongo from ``MONGO_URI``.
    """
    app = Flask(__name__)

    # --- Configuration ---
    deployment_mode = (
        os.getenv("NODE_ENV") or os.getenv("APP_ENV") or "development"
    ).strip().lower()
    app.config["DEPLOYMENT_MODE"] = deployment_mode
    app.config["MONGO_URI"] = build_mongo_uri()
    app.config["MONGO_DB_NAME"] = (os.getenv("DB_NAME") or DEFAULT_DB_NAME).strip()
    app.config["JWT_SECRET_KEY"] = os.getenv(
        "ACCESS_TOKEN_SECRET", "change-me-in-production"
    )
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = SESSION_LIFETIME
    app.config["JWT_TOKEN_LOCATION"] = ["cookies"]
    app.config["JWT_ACCESS_COOKIE_NAME"] = SESSION_COOKIE_NAME
    app.config["JWT_COOKIE_CSRF_PROTECT"] = False
    app.config["LOG_LEVEL"] = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()

    allowed_origins = list(DEFAULT_CORS_ORIGINS)
    cors_extra = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if cors_extra:
        for origin in cors_extra.split(","):
            trimmed = origin.strip()
            if trimmed:
                allowed_origins.append(trimmed)
    app.config["CORS_ORIGINS"] = allowed_origins

    if config:
        app.config.update(config)

    production = is_production_mode(app.config["DEPLOYMENT_MODE"])
    app.config.setdefault("JWT_COOKIE_SECURE", production)
    app.config.setdefault("JWT_COOKIE_SAMESITE", "None" if production else "Strict")

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # --- Initialize extensions ---
    CORS(app, supports_credentials=True, origins=app.config["CORS_ORIGINS"])

    jwt = JWTManager(app)

    if db is None:
        mongo = PyMongo(app)
        db = mongo.db if mongo.db is not None else mongo.cx[app.config["MONGO_DB_NAME"]]
    store = PlantStore(db)
    app.extensions["plantnet_store"] = store

    register_error_handlers(app)

    app.logger.info(
        "plantNet configured for database %s in %s mode",
        getattr(db, "name", app.config["MONGO_DB_NAME"]),
        app.config["DEPLOYMENT_MODE"],
    )

    # --- Session token callbacks ---

    def reject_session(reason: str):
        app.logger.warning("Rejected session token: %s", reason)
        return jsonify({"message": UnauthorizedError.message}), UnauthorizedError.status_code

    @jwt.unauthorized_loader
    def missing_token_callback(reason: str):
        return jsonify({"message": UnauthorizedError.message}), UnauthorizedError.status_code

    @jwt.invalid_token_loader
    def invalid_token_callback(reason: str):
        return reject_session(reason)

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return reject_session("token has expired")

    # --- Request log ---

    @app.before_request
    def start_request_timer():
        g.request_started_at = time.perf_counter()

    @app.after_request
    def log_request(response):
        started_at = g.get("request_started_at")
        elapsed_ms = (time.perf_counter() - started_at) * 1000 if started_at else 0.0
        app.logger.info(
            "%s %s %s %.3f ms",
            request.method,
            request.path,
            response.status_code,
            elapsed_ms,
        )
        return response

    # --- Helpers ---

    def normalize_email(value: Optional[str]) -> str:
        return str(value or "").strip()

    def json_object_body() -> Dict:
        payload = request.get_json(silent=True)
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object.")
        return payload

    def parse_quantity(value) -> int:
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise ValidationError("quantityToUpdate must be a whole number.")
        try:
            quantity = int(value)
        except (TypeError, ValueError):
            raise ValidationError("quantityToUpdate must be a whole number.")
        if quantity < 0:
            raise ValidationError("quantityToUpdate cannot be negative.")
        return quantity

    # --- ROUTES ---

    @app.route("/")
    def index():
        return "Hello from plantNet Server.."

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    # Users
    @app.route("/users/<email>", methods=["POST"])
    def save_user(email: str):
        user_payload = json_object_body()
        existing_user, insert_result = store.upsert_user(
            normalize_email(email), user_payload
        )
        if existing_user is not None:
            return jsonify(serialize_document(existing_user))
        return jsonify(serialize_insert_result(insert_result))

    # Session
    @app.route("/jwt", methods=["POST"])
    def issue_session():
        payload = json_object_body()
        email = normalize_email(payload.get("email"))
        if not email:
            raise ValidationError("Email is required.")

        token = create_access_token(identity=email, additional_claims={"email": email})
        response = jsonify({"success": True})
        set_access_cookies(response, token)
        return response

    @app.route("/logout", methods=["GET"])
    def logout():
        try:
            response = jsonify({"success": True})
            unset_jwt_cookies(response)
            return response
        except Exception as exc:
            app.logger.error("Unable to clear session cookie: %s", exc)
            return jsonify({"message": "Internal server error."}), 500

    # Plants
    @app.route("/plants", methods=["POST"])
    @jwt_required()
    def create_plant():
        plant = json_object_body()
        result = store.add_plant(plant)
        app.logger.info(
            "Plant %s listed by %s", result.inserted_id, get_jwt().get("email")
        )
        return jsonify(serialize_insert_result(result))

    @app.route("/plants", methods=["GET"])
    def list_plants():
        return jsonify([serialize_document(plant) for plant in store.list_plants()])

    @app.route("/plants/<plant_id>", methods=["GET"])
    def get_plant(plant_id: str):
        return jsonify(serialize_document(store.get_plant(plant_id)))

    @app.route("/plants/quantity/<plant_id>", methods=["PATCH"])
    @jwt_required()
    def update_plant_quantity(plant_id: str):
        payload = json_object_body()
        quantity = parse_quantity(payload.get("quantityToUpdate"))
        result = store.adjust_quantity(plant_id, quantity, payload.get("status"))
        return jsonify(serialize_update_result(result))

    # Orders
    @app.route("/order", methods=["POST"])
    @jwt_required()
    def create_order():
        order = json_object_body()
        result = store.place_order(order)
        return jsonify(serialize_insert_result(result))

    @app.route("/customer-order/<email>", methods=["GET"])
    @jwt_required()
    def list_customer_orders(email: str):
        orders = store.order_history(normalize_email(email))
        return jsonify([serialize_document(order) for order in orders])

    @app.route("/order/<order_id>", methods=["DELETE"])
    @jwt_required()
    def cancel_order(order_id: str):
        result = store.cancel_order(order_id)
        app.logger.info("Order %s cancelled by %s", order_id, get_jwt().get("email"))
        return jsonify(serialize_delete_result(result))

    return app


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 9000))
    app = create_app()
    app.logger.info("plantNet is running on port %s", port)
    app.run(host="0.0.0.0", port=port)
