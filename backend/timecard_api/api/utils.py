from typing import Any, Dict, Optional
from flask import jsonify


def api_response(
    data: Any = None,
    message: str = "Success",
    status_code: int = 200,
    error: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None
):
    """
    Standard API response format.
    """
    response = {
        "success": status_code >= 200 and status_code < 300,
        "message": message,
        "data": data
    }

    if error:
        response["error"] = error

    if meta:
        response["meta"] = meta

    return jsonify(response), status_code
