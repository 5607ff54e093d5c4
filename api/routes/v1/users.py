"""
api/routes/v1/users.py -- User record endpoints.

Routes (mounted under /api):
  GET    /users              -- list users
  GET    /users/{user_id}    -- one user
  PUT    /users/{user_id}    -- change email
  DELETE /users/{user_id}    -- revoke all of the user's sessions, then delete the user

Every route requires both the "api-key" header and a live bearer session
(router-level dependencies). Password hashes are stripped from every body.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response

from api.models import Envelope, UserEdit, render
from auth.dependencies import require_api_key, require_session
from auth.sessions import SessionRegistry
from core.response import ApiResponse
from users.service import UsersService

logger = logging.getLogger("sessionauth.api.users")

router = APIRouter(dependencies=[Depends(require_api_key), Depends(require_session)])


@router.get("/users", response_model=Envelope)
def list_users(request: Request, response: Response) -> dict:
    users: UsersService = request.app.state.users_service
    return render(users.get_all_users(), response)


@router.get("/users/{user_id}", response_model=Envelope)
def get_user(request: Request, response: Response, user_id: int) -> dict:
    users: UsersService = request.app.state.users_service
    return render(users.get_user_by_id(user_id), response)


@router.put("/users/{user_id}", response_model=Envelope)
def edit_user(request: Request, response: Response, user_id: int, body: UserEdit) -> dict:
    users: UsersService = request.app.state.users_service
    return render(users.edit_user(user_id, body.model_dump(exclude_none=True)), response)


@router.delete("/users/{user_id}", response_model=Envelope)
def delete_user(request: Request, response: Response, user_id: int) -> dict:
    """Revoke the user's sessions, then delete the record.

    Sessions go first: if the cache is down the request fails with the user
    still in place, never with a deleted user whose tokens still verify.
    """
    users: UsersService = request.app.state.users_service
    sessions: SessionRegistry = request.app.state.sessions

    try:
        revoked = sessions.delete_all_sessions_from_cache(user_id)
    except Exception as exc:
        logger.exception("Revoking sessions of user %d failed", user_id)
        return render(ApiResponse.from_exception(exc), response)
    logger.info("Revoked %d sessions of user %d", revoked, user_id)

    return render(users.delete_user(user_id), response)
