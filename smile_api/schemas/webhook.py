from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class InboundRequest(BaseModel):
    """Transport-neutral view of one inbound webhook delivery."""

    channel: str
    url: str
    signature: Optional[str] = None
    content_type: str = ""
    raw_body: bytes = b""


class InboundPayload(BaseModel):
    sender: Optional[str] = Field(default=None, validation_alias=AliasChoices("From", "from", "sender"))
    body: Optional[str] = Field(default=None, validation_alias=AliasChoices("Body", "body", "message"))
    message_sid: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MessageSid", "SmsMessageSid", "message_sid"),
    )
    profile_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("ProfileName", "profile_name"))

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class StatusCallback(BaseModel):
    message_sid: Optional[str] = Field(default=None, validation_alias=AliasChoices("MessageSid", "SmsSid"))
    message_status: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MessageStatus", "SmsStatus"),
    )
    error_code: Optional[str] = Field(default=None, validation_alias=AliasChoices("ErrorCode"))

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class WebhookReply(BaseModel):
    status_code: int = 200
    content: str
    media_type: str = "application/xml"
    outcome: str  # replied, fallback codes, prompt, ignored, rejected
