"""User directory request and response schemas."""

from pydantic import BaseModel, Field, field_validator


class PushTokenRequest(BaseModel):
    """Register the caller's mobile push token."""

    token: str = Field(..., description="Expo push token; replaces any previous token")

    @field_validator("token")
    @classmethod
    def strip_token(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Token required")
        return stripped


class PublicKeyUpload(BaseModel):
    """Upload the caller's Curve25519 box public key (base64)."""

    public_key: str = Field(..., min_length=1)


class PublicKeyResponse(BaseModel):
    user_id: int
    public_key: str


class BlockRequest(BaseModel):
    user_id: int


class BlockedUser(BaseModel):
    id: int
    username: str
    profile_img: str = ""


class BlockedListResponse(BaseModel):
    blocked_users: list[BlockedUser]


class StatusResponse(BaseModel):
    status: str
