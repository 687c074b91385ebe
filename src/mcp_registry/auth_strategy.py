"""
Outbound authentication for tool server requests.

Turns a server's declared Authentication into request headers. Missing
credentials for api_key/bearer are not an error: the request simply goes out
unauthenticated. oauth2 has no token exchange here, so it is rejected
explicitly instead of silently degrading to no auth.
"""

from typing import Dict

from mcp_registry.errors import UnsupportedAuthError
from mcp_registry.models import Authentication


def _no_auth(auth: Authentication) -> Dict[str, str]:
    return {}


def _api_key(auth: Authentication) -> Dict[str, str]:
    if auth.api_key:
        return {"X-API-Key": auth.api_key}
    return {}


def _bearer(auth: Authentication) -> Dict[str, str]:
    if auth.bearer_token:
        return {"Authorization": f"Bearer {auth.bearer_token}"}
    return {}


AUTH_STRATEGIES = {
    "none": _no_auth,
    "api_key": _api_key,
    "bearer": _bearer,
}


def resolve_auth_headers(auth: Authentication) -> Dict[str, str]:
    """
    Resolve declared authentication into outbound headers.

    Raises:
        UnsupportedAuthError: for oauth2 and any unknown type
    """
    strategy = AUTH_STRATEGIES.get(auth.type)
    if strategy is None:
        raise UnsupportedAuthError(auth.type)
    return strategy(auth)
