from typing import Optional

import httpx

from app.utils.exceptions import ExternalServiceError


async def call_external_api(
    url: str,
    payload,
    *,
    headers: Optional[dict] = None,
    auth: Optional[httpx.Auth] = None,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """
    POST на зовнішній сервіс з переданим payload.
    Повертає JSON-відповідь або кидає ExternalServiceError.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(url, headers=headers, auth=auth, json=payload)
    except httpx.HTTPError as exc:
        raise ExternalServiceError(None, f"Request to {url} failed: {exc}") from exc

    if response.status_code < 200 or response.status_code >= 300:
        raise ExternalServiceError(
            response.status_code,
            f"External API error: {response.text}"
        )

    if not response.content:
        return {}

    try:
        return response.json()
    except ValueError:
        raise ExternalServiceError(response.status_code, "External API did not return JSON")
