"""FastAPI dependencies for the wizard and watchlist routers.

Dependencies:
  get_client_context  → build an immutable ClientContext from the request (or 401)
  get_marketplace     → MarketplaceClient bound to that context
"""

from fastapi import Depends, HTTPException, Request, status

from bidmarket.clients.marketplace import MarketplaceClient
from bidmarket.context import ClientContext

SESSION_COOKIE = "_session"


async def get_client_context(request: Request) -> ClientContext:
    """Forward the caller's marketplace session; signing in is the marketplace's job."""
    session = request.cookies.get(SESSION_COOKIE)
    if not session:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in",
        )
    return ClientContext(
        csrf_token=request.headers.get("X-CSRF-Token"),
        session_cookie=session,
        user_id=request.headers.get("X-User-Id"),
        theme=request.cookies.get("theme", "system"),
    )


async def get_marketplace(
    request: Request,
    context: ClientContext = Depends(get_client_context),
) -> MarketplaceClient:
    client: MarketplaceClient = request.app.state.marketplace
    return client.with_context(context)
