"""
API request and response models for the LanguageBot REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py and practice/models.py, which
own the internal domain representation. Route handlers map between the two.

The browser speaks camelCase JSON, so fields carry camelCase aliases while the
Python attribute names stay snake_case.

POST /auth/login and POST /credential read their bodies raw in the handler so
that every malformed shape maps to 401 / 400 instead of a 422.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-checkable error code plus a short human message."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Envelope for every non-2xx JSON response produced by this service."""

    error: ErrorDetail


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class UserInfo(BaseModel):
    id: int
    email: str
    name: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool = True
    user: UserInfo


class AuthStatusResponse(BaseModel):
    authenticated: bool
    user: Optional[UserInfo] = None


class SuccessResponse(BaseModel):
    success: bool = True


# ---------------------------------------------------------------------------
# Credential
# ---------------------------------------------------------------------------


class CredentialStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    has_key: bool = Field(alias="hasKey")


# ---------------------------------------------------------------------------
# Conversation settings
# ---------------------------------------------------------------------------


class ConversationSettingsBody(BaseModel):
    """Body of POST /settings and the settings object of GET /settings."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    words_input: Optional[str] = Field(default=None, alias="wordsInput", max_length=10_000)
    exam_description: Optional[str] = Field(default=None, alias="examDescription", max_length=5_000)
    language: Optional[str] = Field(default=None, max_length=64)
    level: Optional[str] = Field(default=None, max_length=32)


class ConversationSettingsResponse(BaseModel):
    settings: Optional[ConversationSettingsBody] = None


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
