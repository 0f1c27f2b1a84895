"""OpenAPI metadata and customization utilities.

Provides a helper to enrich the generated OpenAPI schema with:
- Tags metadata
- API Key security scheme (``X-API-Key``) with per-path overrides
- The 429 throttling response on every rate limited operation

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from app.schemas.rate_limit import RateLimitExceededResponse

# Paths reachable without an API key
PUBLIC_PATH_SUFFIXES = ("/health", "/health/ready", "/auth/sign-up", "/auth/sign-in")


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security.

    - Injects components.securitySchemes for API Key auth (header ``X-API-Key``)
    - Marks all operations as requiring API Key by default, then exempts public
      endpoints by setting ``security: []``
    - Documents the 429 response on every non-health operation
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
                "description": "Provide your API key via the X-API-Key header.",
            },
        )
        component_schemas = components.setdefault("schemas", {})
        component_schemas.setdefault(
            "RateLimitExceededResponse",
            RateLimitExceededResponse.model_json_schema(by_alias=True),
        )

        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {"name": "Auth", "description": "Sign-up, sign-in and sign-out."},
            {"name": "Users", "description": "User resources (per-user limits)."},
            {"name": "Rate Limit", "description": "Usage introspection."},
            {"name": "Health", "description": "Liveness and readiness checks."},
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        paths = schema.get("paths", {})
        for path, methods in paths.items():
            is_health = path.startswith("/health")
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if path.endswith(PUBLIC_PATH_SUFFIXES):
                    method_obj["security"] = []
                if not is_health:
                    method_obj.setdefault("responses", {}).setdefault(
                        "429",
                        {
                            "description": "Rate limit exceeded",
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "$ref": "#/components/schemas/RateLimitExceededResponse"
                                    }
                                }
                            },
                        },
                    )

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
