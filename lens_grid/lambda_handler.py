"""
AWS Lambda handler for the lens grid API behind API Gateway.
Supports both REST (payload v1: httpMethod/path) and HTTP API (payload v2:
requestContext.http/rawPath) proxy events.
"""
from __future__ import annotations

import base64
import json
import logging
from typing import Any, Callable

from .errors import SearchBackendError, error_name
from .tools.get_grid_cells import handler as get_grid_cells
from .tools.get_lens_catalog import handler as get_lens_catalog
from .tools.search_top_k import handler as search_top_k

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any] | None, dict | None], dict[str, Any]]

# Map route path or tool name to (allowed methods, handler)
TOOL_HANDLERS: dict[str, tuple[tuple[str, ...], Handler]] = {
    "/api/gridcell": (("GET", "POST"), get_grid_cells),
    "GetGridCells": (("GET", "POST"), get_grid_cells),
    "/api/search": (("POST",), search_top_k),
    "SearchTopK": (("POST",), search_top_k),
    "/api/lenses": (("GET",), get_lens_catalog),
    "GetLensCatalog": (("GET",), get_lens_catalog),
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}


def dispatch(
    route: str,
    method: str,
    params: dict[str, Any] | None,
    body: dict | None,
) -> tuple[int, dict[str, Any]]:
    """
    Run the handler for `route` and return (status, body). Never raises:
    validation errors map to 400, backend failures to 502, anything else to 500.
    """
    entry = TOOL_HANDLERS.get(route) or TOOL_HANDLERS.get("/" + route.strip("/"))
    if not entry:
        logger.error("Unknown route: %s", route)
        return 404, {"error": "NotFound", "route": route}
    methods, handler_fn = entry
    if method.upper() not in methods:
        return 405, {"error": "MethodNotAllowed", "allowed": list(methods)}

    try:
        result = handler_fn(params, body)
        return 200, result
    except SearchBackendError as e:
        logger.warning("Search backend failure: %s", e)
        return 502, {"error": error_name(e), "message": str(e)}
    except ValueError as e:
        logger.warning("Validation error: %s", e)
        return 400, {"error": error_name(e), "message": str(e)}
    except Exception as e:
        logger.exception("Handler execution failed: %s", e)
        return 500, {"error": "InternalError", "message": str(e)}


def _extract_request(event: dict) -> tuple[str, str, dict[str, Any], dict | None]:
    """Pull (method, path, query params, JSON body) out of a v1 or v2 proxy event."""
    http_ctx = (event.get("requestContext") or {}).get("http") or {}
    method = event.get("httpMethod") or http_ctx.get("method") or "GET"
    path = event.get("path") or event.get("rawPath") or http_ctx.get("path") or ""

    params: dict[str, Any] = dict(
        event.get("multiValueQueryStringParameters")
        or event.get("queryStringParameters")
        or {}
    )

    raw_body = event.get("body")
    body = None
    if raw_body:
        if event.get("isBase64Encoded"):
            raw_body = base64.b64decode(raw_body).decode("utf-8")
        try:
            body = json.loads(raw_body) if isinstance(raw_body, str) else raw_body
        except json.JSONDecodeError as e:
            raise ValueError("Request body must be valid JSON") from e
        if not isinstance(body, dict):
            raise ValueError("Request body must be a JSON object")
    return method, path, params, body


def _build_response(status: int, body: dict) -> dict:
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json", **CORS_HEADERS},
        "body": json.dumps(body),
    }


def lambda_handler(event: dict, context: Any) -> dict:
    """
    Main Lambda entry point.
    Routes to the tool handler registered for the request path.
    """
    try:
        method, path, params, body = _extract_request(event)
    except ValueError as e:
        logger.warning("Malformed request: %s", e)
        return _build_response(400, {"error": "ValidationError", "message": str(e)})

    logger.info("Invocation: method=%s path=%s params=%s body=%s",
                method, path, sorted(params), "present" if body else "None")
    if method.upper() == "OPTIONS":
        return _build_response(204, {})

    status, result = dispatch(path, method, params, body)
    resp = _build_response(status, result)
    logger.info("Returning status=%d size=%d bytes", status, len(resp["body"]))
    return resp
