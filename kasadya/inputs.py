"""Helpers for reading JSON request bodies."""
from __future__ import annotations

from flask import request


class InvalidInput(ValueError):
    """Raised when a request body or field has the wrong JSON type."""


def json_body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise InvalidInput("request body must be a JSON object")
    return body


def get_text(payload: dict, key: str, default: str = "", strip: bool = True) -> str:
    value = payload.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise InvalidInput(f"{key} must be a string")
    return value.strip() if strip else value
