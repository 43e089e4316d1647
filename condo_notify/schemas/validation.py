from typing import Optional, Dict
from uuid import UUID
from pydantic import BaseModel, Field, field_validator, ValidationError
from condo_notify.database.models import WhatsAppProviderName

__all__ = [
    "DispatchRequest",
    "VerifyTokenRequest",
    "WhatsAppConfigIn",
    "PauseRequest",
    "TemplateUpdate",
    "ValidationError",
]


class DispatchRequest(BaseModel):
    templateSlug: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    variables: Dict[str, str] = Field(default_factory=dict)
    functionName: str = "dispatch"
    imageUrl: Optional[str] = None
    wabaTemplate: Optional[str] = None
    templateLanguage: str = "pt_BR"
    condominiumId: Optional[int] = None
    residentId: Optional[int] = None

    @field_validator('phone')
    def enough_digits(cls, v):
        # Free-form input; separators are stripped before sending
        assert sum(c.isdigit() for c in v) >= 8, "Must contain at least 8 digits"
        return v

    @field_validator('variables', mode='before')
    def stringify_values(cls, v):
        if v is None:
            return {}
        # Callers send numbers and booleans too; templates only take text
        return {str(k): "" if val is None else str(val) for k, val in dict(v).items()}


class VerifyTokenRequest(BaseModel):
    token: UUID


class WhatsAppConfigIn(BaseModel):
    provider: WhatsAppProviderName = WhatsAppProviderName.zpro
    api_url: str = Field(min_length=1)
    api_key: str = Field(min_length=1)
    instance_id: Optional[str] = None
    app_url: Optional[str] = None

    @field_validator('provider', mode='before')
    def lower_provider(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator('api_url', 'app_url')
    def http_url(cls, v):
        if v is None:
            return v
        v = v.strip()
        assert v.startswith(("http://", "https://")), "Must be an http(s) URL"
        return v


class PauseRequest(BaseModel):
    paused_by: Optional[str] = None


class TemplateUpdate(BaseModel):
    content: Optional[str] = Field(default=None, min_length=1)
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
