"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- API Key security scheme (``X-API-Key``) with health endpoints exempted
- The shared error body and reason codes as a reusable component

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

REASON_CODES = [
    "INVALID_INPUT",
    "AUTH_ERROR",
    "RATE_LIMIT",
    "API_ERROR",
    "TIMEOUT",
    "UNAVAILABLE",
    "PERSISTENCE_ERROR",
    "NOT_FOUND",
    "INTERNAL_ERROR",
]

TAGS_METADATA = [
    {
        "name": "Optimization",
        "description": "Submit a prompt for optimization (one per user per cooldown window).",
    },
    {
        "name": "History",
        "description": "Browse and delete the caller's stored optimizations.",
    },
    {
        "name": "Health",
        "description": "Liveness checks.",
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security.

    - Injects components.securitySchemes for API Key auth (header ``X-API-Key``)
    - Marks all operations as requiring API Key by default, then exempts health
      endpoints by setting ``security: []``
    - Registers the ``ErrorResponse`` schema listing every reason code
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
                "description": "Provide your API key via the X-API-Key header.",
            },
        )
        components.setdefault("schemas", {}).setdefault(
            "ErrorResponse",
            {
                "type": "object",
                "properties": {
                    "error": {
                        "type": "object",
                        "properties": {
                            "code": {"type": "string"},
                            "reason": {"type": "string", "enum": REASON_CODES},
                            "message": {"type": "string"},
                            "request_id": {"type": "string", "nullable": True},
                            "details": {"type": "object"},
                        },
                        "required": ["code", "reason", "message"],
                    }
                },
            },
        )

        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in TAGS_METADATA:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
