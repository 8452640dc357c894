"""FastAPI dependencies shared by the routers.

Learn: The engine is built once per app (see main.create_app) and hung
off app.state, so routes reach it through the request rather than a
module global. Tests override nothing: they build the app with a fake
gateway and a fake launcher instead.
"""

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from callbridge.bridge import Bridge


def get_bridge(request: Request) -> Bridge:
    return request.app.state.bridge


async def require_api_key(
    x_api_key: Optional[str] = Header(None),
    bridge: Bridge = Depends(get_bridge),
) -> None:
    """401 unless the x-api-key header matches CALLBRIDGE_API_KEY (when one is set)."""
    expected = bridge.settings.api_key
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
