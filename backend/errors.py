"""Error kinds raised by the plantNet routes and the handlers that render them."""

from typing import Optional

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException


class APIError(Exception):
    status_code = 500
    message = "Internal server error."
    plain_text = False

    def __init__(self, message: Optional[str] = None, *, plain_text: Optional[bool] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        if plain_text is not None:
            self.plain_text = plain_text


class ValidationError(APIError):
    status_code = 400
    message = "Invalid request."


class UnauthorizedError(APIError):
    status_code = 401
    message = "unauthorized access"


class NotFoundError(APIError):
    status_code = 404
    message = "Resource not found."


class ConflictError(APIError):
    status_code = 409
    message = "Request conflicts with the current state of the resource."


class InternalError(APIError):
    pass


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(APIError)
    def handle_api_error(error: APIError):
        if error.status_code >= 500:
            app.logger.error("Request failed: %s", error.message)
        if error.plain_text:
            return error.message, error.status_code, {"Content-Type": "text/plain; charset=utf-8"}
        return jsonify({"message": error.message}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return jsonify({"message": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        app.logger.exception("Unhandled error: %s", error)
        return jsonify({"message": InternalError.message}), 500
