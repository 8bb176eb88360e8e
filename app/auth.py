"""Service key check for the quest router.

Callers are backend services that have already authenticated the user and
authorised them for the relationship. The engine only checks that the caller
holds the shared service key. With QUESTS_API_KEY unset every caller passes.
"""

import hmac

from fastapi import Header

from app.config import settings
from app.errors import ServiceKeyRejectedError

BEARER_PREFIX = "Bearer "


def presented_key(x_api_key: str | None, authorization: str | None) -> str | None:
    if x_api_key is not None:
        return x_api_key
    if authorization and authorization.startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX):].strip()
    return None


async def require_service_key(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    authorization: str | None = Header(default=None),
) -> None:
    expected = settings.quests_api_key
    if expected is None:
        return
    key = presented_key(x_api_key, authorization)
    if key is None or not hmac.compare_digest(key.encode(), expected.encode()):
        raise ServiceKeyRejectedError()
