from __future__ import annotations

from typing import Mapping

from fastapi import Request, Response


# Browser requests authenticated with a user session
CORS_HEADERS: dict[str, str] = {
	"Access-Control-Allow-Origin": "*",
	"Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

# Webhook / integration endpoints that accept x-api-key
CORS_HEADERS_WITH_API_KEY: dict[str, str] = {
	**CORS_HEADERS,
	"Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, x-api-key",
}

# External API endpoints that also advertise their methods
CORS_HEADERS_FULL: dict[str, str] = {
	**CORS_HEADERS_WITH_API_KEY,
	"Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
}


def is_preflight(request: Request) -> bool:
	return request.method == "OPTIONS"


def preflight_response(headers: Mapping[str, str] = CORS_HEADERS) -> Response:
	return Response(status_code=200, headers=dict(headers))
