import json
import math
from datetime import datetime
from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel


class SafeJSONResponse(JSONResponse):
    """JSONResponse that converts NaN/Infinity to null and serialises models and datetimes."""

    def render(self, content: Any) -> bytes:
        return json.dumps(
            sanitize(content),
            ensure_ascii=False,
            allow_nan=False,
            default=self._default,
        ).encode("utf-8")

    @staticmethod
    def _default(obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def sanitize(obj):
    """Recursively make engine output JSON-safe.

    Non-finite floats become None, pydantic models are dumped, datetimes become
    ISO strings. Token amounts are already decimal strings.
    """
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            return None
        return obj
    if isinstance(obj, BaseModel):
        return sanitize(obj.model_dump(mode="json"))
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize(v) for v in obj]
    return obj
