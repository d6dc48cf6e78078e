"""Error helpers for the zkuplc Flask API."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from flask import jsonify


@dataclass
class APIError(Exception):
    """Structured error type that carries an HTTP status code."""

    status: int
    message: str
    extra: Dict[str, Any] | None = None

    def to_response(self):
        payload: Dict[str, Any] = {"success": False, "error": self.message}
        if self.extra:
            payload.update(self.extra)
        return jsonify(payload), self.status


__all__ = ["APIError"]
