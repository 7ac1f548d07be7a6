"""
api/routes/credential.py -- The signed-in user's upstream API key.

Routes (all require a session):
  POST   /credential  -- store or replace the key
  GET    /credential  -- report whether a key is stored (never the key itself)
  DELETE /credential  -- remove the key; succeeds whether or not one existed

GET deliberately ignores the server fallback key: it answers "has this user
saved a key", not "can this user make proxied calls".
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request

from api.models import CredentialStatusResponse, SuccessResponse
from auth.dependencies import get_current_user_id
from vault.store import CredentialVault

router = APIRouter()

_MAX_KEY_LENGTH = 1024


def _vault(request: Request) -> CredentialVault:
    return request.app.state.vault


@router.post("/credential", response_model=SuccessResponse)
def save_credential(
    request: Request,
    body: Any = Body(default=None),
    user_id: int = Depends(get_current_user_id),
) -> SuccessResponse:
    """Store or replace the caller's key from a {"apiKey": "..."} body.

    The body is taken raw so that every malformed shape (no body, a bare
    string, an array, a non-string apiKey) answers 400 rather than 422.
    """
    api_key = body.get("apiKey") if isinstance(body, dict) else None
    if not isinstance(api_key, str) or not api_key.strip():
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_api_key", "message": "apiKey is required and must be a string."},
        )
    if len(api_key) > _MAX_KEY_LENGTH:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_api_key", "message": "apiKey is too long."},
        )
    _vault(request).save(user_id, api_key.strip())
    return SuccessResponse()


@router.get("/credential", response_model=CredentialStatusResponse)
def credential_status(
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> CredentialStatusResponse:
    if not _vault(request).has_credential(user_id):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "No API key stored."},
        )
    return CredentialStatusResponse(has_key=True)


@router.delete("/credential", response_model=SuccessResponse)
def delete_credential(
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> SuccessResponse:
    _vault(request).delete(user_id)
    return SuccessResponse()
