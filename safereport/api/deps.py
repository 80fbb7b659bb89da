"""FastAPI dependencies shared by the routers."""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from safereport.auth import authenticate
from safereport.models import User
from safereport.services import Services, build_services
from safereport.store.base import Store

_bearer = HTTPBearer(auto_error=False)


async def get_store(request: Request) -> Store:
    """The store serving this request, chosen by a fresh liveness probe."""
    store = await request.app.state.store_selector.select()
    request.state.store_backend = store.name
    return store


async def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    store: Store = Depends(get_store),
) -> User:
    return await authenticate(store, creds.credentials if creds else None)


async def get_services(request: Request, store: Store = Depends(get_store)) -> Services:
    state = request.app.state
    return build_services(store, state.hub, state.classifier)
