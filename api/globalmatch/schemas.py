from typing import Any, Literal

from pydantic import BaseModel, Field


class SendMessageRequest(BaseModel):
    content: str
    message_type: Literal["text", "image", "file"] = "text"


class BlockRequest(BaseModel):
    blocked_user_id: str
    reason: str | None = None


class SafetyActionInput(BaseModel):
    action_type: Literal["warning", "temporary_ban", "permanent_ban", "content_removal", "profile_review"]
    reason: str | None = None
    duration_hours: int | None = Field(default=None, ge=1, le=24 * 365)


class ProcessReportRequest(BaseModel):
    status: Literal["pending", "investigating", "resolved", "rejected"]
    admin_notes: str | None = None
    action: SafetyActionInput | None = None


class CheckoutRequest(BaseModel):
    plan_id: str


class DeviceTokenRequest(BaseModel):
    token: str = Field(min_length=1, max_length=4096)
    device_type: Literal["web", "ios", "android"]


class NotificationSettingsUpdate(BaseModel):
    push_enabled: bool | None = None
    match_notifications: bool | None = None
    message_notifications: bool | None = None
    like_notifications: bool | None = None
    profile_view_notifications: bool | None = None


class AdminPushRequest(BaseModel):
    user_id: str
    title: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1, max_length=1000)
    data: dict[str, Any] = Field(default_factory=dict)


class TranslateRequest(BaseModel):
    text: str
    target_language: str
    source_language: str | None = None


class BatchTranslateRequest(BaseModel):
    texts: list[str]
    target_language: str
    source_language: str | None = None


class DetectRequest(BaseModel):
    text: str


class CreateCallRequest(BaseModel):
    receiver_id: str
    call_type: Literal["voice", "video"] = "video"


class RespondCallRequest(BaseModel):
    accept: bool


class TrackActivityRequest(BaseModel):
    activity_type: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class EmailPreferencesUpdate(BaseModel):
    match_notifications: bool | None = None
    message_notifications: bool | None = None
    newsletter: bool | None = None
    promotional: bool | None = None


class UnsubscribeRequest(BaseModel):
    email: str | None = None
    type: Literal["all", "marketing"] = "all"


class EmailTemplateUpdate(BaseModel):
    subject: str | None = None
    html_content: str | None = None
    text_content: str | None = None
    is_active: bool | None = None


class AdminSendEmailRequest(BaseModel):
    to: str
    template_name: str
    variables: dict[str, Any] = Field(default_factory=dict)


class VerificationStatusRequest(BaseModel):
    status: Literal["pending", "verified", "rejected"]


class SuspendRequest(BaseModel):
    duration_hours: int = Field(default=24, ge=1, le=24 * 365)
    reason: str = "Suspended by admin"


class BanRequest(BaseModel):
    reason: str = "Banned by admin"
