"""Anonymous sign-in, identity and admin-elevation requests."""
from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from safereport.api.deps import get_current_user, get_services, get_store
from safereport.auth import create_access_token
from safereport.models import AdminRequestSubmission, User
from safereport.services import Services
from safereport.store.base import Store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


class AnonymousLoginRequest(BaseModel):
    campus_id: Optional[str] = Field(None, max_length=64)


def user_out(user: User) -> dict:
    return {
        "id": user.id,
        "anonymous_id": user.anonymous_id,
        "role": user.role.value,
        "is_anonymous": user.is_anonymous,
        "campus_id": user.campus_id,
        "email": user.email,
    }


@router.post("/anonymous", status_code=201)
async def anonymous_login(body: Optional[AnonymousLoginRequest] = None, store: Store = Depends(get_store)):
    """Create a fresh anonymous reporter and hand back its access token."""
    campus_id = body.campus_id if body else None
    user = await store.create_user(str(uuid.uuid4()), campus_id=campus_id)
    logger.info("Anonymous user %s created in %s store", user.id, store.name)
    return {"user": user_out(user), **create_access_token(user)}


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return {"user": user_out(user)}


@router.post("/request-admin", status_code=201)
async def request_admin(
    body: AdminRequestSubmission,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """File a request to be elevated to admin. One pending request per user."""
    request = await services.admin_requests.request_admin(user, body)
    return {"request": request.model_dump(mode="json")}
