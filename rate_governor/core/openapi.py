"""OpenAPI customization utilities.

Enriches the generated OpenAPI schema with:
- Optional API Key security scheme (``X-API-Key``)
- Tags metadata
- Rate limit response headers and the 429 response on every limited operation

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_RATE_LIMIT_HEADERS: Dict[str, Any] = {
    "X-RateLimit-Limit": {
        "description": "Maximum requests allowed in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "Seconds until the current window resets.",
        "schema": {"type": "integer"},
    },
}


def _too_many_requests_response() -> Dict[str, Any]:
    headers = dict(_RATE_LIMIT_HEADERS)
    headers["Retry-After"] = {
        "description": "Seconds to wait before retrying.",
        "schema": {"type": "integer"},
    }
    return {"description": "Rate limit exceeded", "headers": headers}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to document auth and rate limits.

    - Injects components.securitySchemes for optional API Key auth
    - Adds X-RateLimit-* headers to success responses and a 429 response to
      every operation outside ``/health``
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Optional API key; authenticated callers are limited per user.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Operations",
                "description": "Rate limited endpoints (general, export, sync, restore).",
            },
            {
                "name": "Health",
                "description": "Liveness checks, never rate limited.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                continue
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                method_obj.setdefault("security", [{"ApiKeyAuth": []}, {}])
                responses = method_obj.setdefault("responses", {})
                for status_code, response in responses.items():
                    if status_code.startswith("2"):
                        response.setdefault("headers", {}).update(_RATE_LIMIT_HEADERS)
                responses.setdefault("429", _too_many_requests_response())

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
