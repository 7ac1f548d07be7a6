"""
api/routes/settings.py -- Per-user conversation practice settings.

Routes (all require a session):
  GET  /settings  -- {"settings": {...}} or {"settings": null} if never saved
  POST /settings  -- replace the stored settings
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import ConversationSettingsBody, ConversationSettingsResponse, SuccessResponse
from auth.dependencies import get_current_user_id
from practice.models import ConversationSettings
from practice.store import ConversationSettingsStore

router = APIRouter()


def _store(request: Request) -> ConversationSettingsStore:
    return request.app.state.settings_store


@router.get("/settings", response_model=ConversationSettingsResponse)
def get_conversation_settings(
    request: Request,
    user_id: int = Depends(get_current_user_id),
) -> ConversationSettingsResponse:
    stored = _store(request).get(user_id)
    if stored is None:
        return ConversationSettingsResponse(settings=None)
    return ConversationSettingsResponse(
        settings=ConversationSettingsBody(
            words_input=stored.words_input,
            exam_description=stored.exam_description,
            language=stored.language,
            level=stored.level,
        )
    )


@router.post("/settings", response_model=SuccessResponse)
def save_conversation_settings(
    request: Request,
    body: ConversationSettingsBody,
    user_id: int = Depends(get_current_user_id),
) -> SuccessResponse:
    _store(request).save(
        user_id,
        ConversationSettings(
            words_input=body.words_input,
            exam_description=body.exam_description,
            language=body.language,
            level=body.level,
        ),
    )
    return SuccessResponse()
