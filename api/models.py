"""
API request and response models for DocDesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Field names follow the wire format the existing web and mobile clients send
(email_address, mobile_number, verify_token, ...).

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.identity import EMAIL_PATTERN, MOBILE_PATTERN, OTP_PATTERN, PINCODE_PATTERN
from auth.models import Credential

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def _blank_to_none(value):
    value = _strip(value)
    if isinstance(value, str) and not value:
        return None
    return value


# ---------------------------------------------------------------------------
# OTP flow requests / responses
# ---------------------------------------------------------------------------


class SendOtpRequest(BaseModel):
    """Request body for POST /auth/send-otp and /auth/forgot/send-otp."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email_address: str = Field(max_length=255, pattern=EMAIL_PATTERN)


class VerifyOtpRequest(BaseModel):
    """Request body for POST /auth/verify-otp and /auth/forgot/verify-otp."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email_address: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    otp: str = Field(pattern=OTP_PATTERN, description="The 6-digit code from the email.")


class VerifyOtpResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    verify_token: str


# ---------------------------------------------------------------------------
# Registration / reset
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register.

    verify_token must come from a successful POST /auth/verify-otp for the
    same email_address. password is kept verbatim; the other text fields
    are trimmed.
    """

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    mobile_number: str = Field(pattern=MOBILE_PATTERN)
    email_address: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=128)
    village_city: Optional[str] = Field(default=None, max_length=120)
    pincode: Optional[str] = Field(default=None, pattern=PINCODE_PATTERN)
    state: Optional[str] = Field(default=None, max_length=80)
    district: Optional[str] = Field(default=None, max_length=80)
    taluka: Optional[str] = Field(default=None, max_length=80)
    verify_token: str = Field(min_length=1, max_length=128)

    @field_validator("first_name", "last_name", "mobile_number", "email_address", "verify_token", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("pincode", "village_city", "state", "district", "taluka", mode="before")
    @classmethod
    def empty_as_none(cls, value):
        return _blank_to_none(value)

    def to_credential(self) -> Credential:
        return Credential(
            email=self.email_address,
            role="user",
            mobile_number=self.mobile_number,
            first_name=self.first_name,
            last_name=self.last_name,
            village_city=self.village_city,
            pincode=self.pincode,
            state=self.state,
            district=self.district,
            taluka=self.taluka,
        )


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/forgot/reset-password."""

    email_address: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    new_password: str = Field(min_length=6, max_length=128)
    verify_token: str = Field(min_length=1, max_length=128)

    @field_validator("email_address", "verify_token", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /auth/login. username is an email or a mobile number."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class AdminLoginRequest(BaseModel):
    """Request body for POST /admin/login. Accepts {username, password} or {email, password}."""

    username: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(min_length=1, max_length=128)

    @model_validator(mode="after")
    def require_identity(self) -> "AdminLoginRequest":
        if not (self.username or self.email):
            raise ValueError("username/email and password required")
        return self

    @property
    def identity(self) -> str:
        return self.username or self.email or ""


# ---------------------------------------------------------------------------
# Account responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user account. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    first_name: Optional[str]
    last_name: Optional[str]
    full_name: str
    mobile_number: Optional[str]
    email_address: str
    village_city: Optional[str] = None
    pincode: Optional[str] = None
    state: Optional[str] = None
    district: Optional[str] = None
    taluka: Optional[str] = None
    is_active: bool
    created_at: str

    @classmethod
    def from_credential(cls, c: Credential) -> "UserResponse":
        return cls(
            id=c.id,
            first_name=c.first_name,
            last_name=c.last_name,
            full_name=c.full_name,
            mobile_number=c.mobile_number,
            email_address=c.email,
            village_city=c.village_city,
            pincode=c.pincode,
            state=c.state,
            district=c.district,
            taluka=c.taluka,
            is_active=c.is_active,
            created_at=c.created_at or "",
        )


class AdminResponse(BaseModel):
    """Public view of an admin account. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    admin_id: int
    first_name: Optional[str]
    last_name: Optional[str]
    email_username: str
    mobile_number: Optional[str]
    dob: Optional[str]
    admin_home_desc: Optional[str] = None
    admin_home_image: Optional[str] = None
    is_active: bool
    token_version: int
    created_at: str
    updated_at: Optional[str] = None

    @classmethod
    def from_credential(cls, c: Credential) -> "AdminResponse":
        return cls(
            admin_id=c.id,
            first_name=c.first_name,
            last_name=c.last_name,
            email_username=c.email,
            mobile_number=c.mobile_number,
            dob=c.dob,
            admin_home_desc=c.admin_home_desc,
            admin_home_image=c.admin_home_image,
            is_active=c.is_active,
            token_version=c.session_version,
            created_at=c.created_at or "",
            updated_at=c.updated_at,
        )


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str = "Login success"
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class AdminLoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str = "Login success"
    token: str
    token_type: str = "bearer"
    expires_in: int
    admin: AdminResponse


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str = "Registered successfully"
    user: UserResponse


class MeResponse(BaseModel):
    """Identity information for the current session."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    email_address: str
    role: str
    session_version: int
    expires_at: int


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ForceLogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    id: int
    email_address: str
    token_version: int


# ---------------------------------------------------------------------------
# Account updates (admin only)
# ---------------------------------------------------------------------------


class UserUpdate(BaseModel):
    """Request body for PUT /auth/users/{id}. Omitted fields are left unchanged."""

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    mobile_number: Optional[str] = Field(default=None, pattern=MOBILE_PATTERN)
    email_address: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    village_city: Optional[str] = Field(default=None, max_length=120)
    pincode: Optional[str] = Field(default=None, pattern=PINCODE_PATTERN)
    state: Optional[str] = Field(default=None, max_length=80)
    district: Optional[str] = Field(default=None, max_length=80)
    taluka: Optional[str] = Field(default=None, max_length=80)
    password: Optional[str] = Field(default=None, min_length=1, max_length=128)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator(
        "pincode", "mobile_number", "email_address", "village_city", "state", "district", "taluka", mode="before"
    )
    @classmethod
    def empty_as_none(cls, value):
        return _blank_to_none(value)


class AdminUpdate(BaseModel):
    """Request body for PUT /admin/{id}. Omitted fields are left unchanged."""

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email_username: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    mobile_number: Optional[str] = Field(default=None, pattern=MOBILE_PATTERN)
    dob: Optional[date] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=1, max_length=128)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("email_username", "mobile_number", mode="before")
    @classmethod
    def empty_as_none(cls, value):
        return _blank_to_none(value)


class AdminHomeUpdate(BaseModel):
    """Request body for PATCH /admin/{id}/home. Both fields are replaced; omitted means cleared."""

    admin_home_desc: Optional[str] = Field(default=None, max_length=5000)
    admin_home_image: Optional[str] = Field(default=None, max_length=2048)


class ActiveUpdate(BaseModel):
    """Request body for PATCH /admin/users/{id}/active."""

    is_active: bool


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
