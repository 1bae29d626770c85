"""
Session-scoped gateway client.

One GatewayClient per process/session, created on first use. Call
`close_gateway_client()` at session end (sign-out or shutdown); it is the only
teardown point. Only the composition root should call `get_gateway_client()`;
everything else receives the client as an argument.
"""

from typing import Optional

from mct.dashboard.config import DashboardSettings, load_dashboard_settings
from mct.dashboard.gateway import GatewayClient

_client: Optional[GatewayClient] = None


def get_gateway_client(settings: Optional[DashboardSettings] = None) -> GatewayClient:
    """Get or create the session's gateway client."""
    global _client
    if _client is None:
        _client = GatewayClient.from_settings(settings or load_dashboard_settings())
    return _client


async def close_gateway_client() -> None:
    global _client
    if _client is not None:
        client, _client = _client, None
        await client.aclose()
