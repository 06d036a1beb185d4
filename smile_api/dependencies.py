from typing import Optional

from smile_api.config import settings
from smile_api.database import SessionLocal
from smile_api.services.llm import OpenAIProvider
from smile_api.services.twilio_service import TwilioMessagingClient, TwilioWhatsAppChannel
from smile_api.services.webhook_orchestrator import WebhookOrchestrator

_orchestrator: Optional[WebhookOrchestrator] = None


def build_whatsapp_channel() -> TwilioWhatsAppChannel:
    messaging_client = None
    if settings.twilio_reply_mode == "api":
        messaging_client = TwilioMessagingClient(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_whatsapp_number,
        )
    return TwilioWhatsAppChannel(
        auth_token=settings.twilio_auth_token,
        reply_mode=settings.twilio_reply_mode,
        messaging_client=messaging_client,
    )


def build_orchestrator() -> WebhookOrchestrator:
    provider = OpenAIProvider(
        api_key=settings.openai_api_key,
        default_model=settings.openai_model,
        base_url=settings.openai_base_url,
        default_timeout_seconds=settings.llm_timeout_seconds,
    )
    whatsapp = build_whatsapp_channel()
    return WebhookOrchestrator(
        session_factory=SessionLocal,
        llm_provider=provider,
        channels={whatsapp.name: whatsapp},
        system_prompt=settings.system_prompt,
        history_limit=settings.history_limit,
        model=settings.openai_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout_seconds=settings.llm_timeout_seconds,
    )


def get_orchestrator() -> WebhookOrchestrator:
    """Get or create the process-wide orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator
