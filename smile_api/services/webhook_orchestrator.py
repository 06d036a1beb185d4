"""Drives one inbound webhook delivery from verification to the channel reply."""

from typing import Callable, List, Mapping, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from smile_api.errors import MalformedInputError, PersistenceError, VerificationError
from smile_api.logging_config import LoggerAdapter, get_logger, preview
from smile_api.models import MessageRole
from smile_api.schemas.webhook import InboundRequest, WebhookReply
from smile_api.services.context_service import build_context
from smile_api.services.identity_service import resolve_user_id
from smile_api.services.llm.base import LLMProvider
from smile_api.services.message_service import get_recent_history, save_message
from smile_api.services.result import Result
from smile_api.services.twilio_service import TwilioWhatsAppChannel

logger = get_logger("webhook_orchestrator")

DEFAULT_HISTORY_LIMIT = 10
MSG_PROMPT_FOR_INPUT = "Ciao 💛 Sono SMILE AI. Raccontami come ti senti oggi."
MSG_EMPTY_COMPLETION = "Sono qui con te. Vuoi raccontarmi di più?"
MSG_COMPLETION_FAILED = "Sono qui con te. In questo momento puoi prenderti un respiro lento e profondo."
MSG_TECHNICAL_DIFFICULTY = "Scusami, sto avendo qualche difficoltà tecnica. Riprova tra qualche minuto 💛"


class WebhookOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        llm_provider: LLMProvider,
        channels: Mapping[str, TwilioWhatsAppChannel],
        *,
        system_prompt: str,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 200,
        timeout_seconds: Optional[float] = None,
    ):
        if history_limit < 1:
            raise ValueError("history_limit must be positive")
        self.session_factory = session_factory
        self.llm_provider = llm_provider
        self.channels = dict(channels)
        self.system_prompt = system_prompt
        self.history_limit = history_limit
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    def get_channel(self, name: str) -> Optional[TwilioWhatsAppChannel]:
        return self.channels.get(name)

    def handle(self, inbound: InboundRequest) -> WebhookReply:
        """Process one delivery. Only a failed signature check yields a non-200 reply."""
        channel = self.get_channel(inbound.channel)
        if channel is None:
            return WebhookReply(
                status_code=404,
                content=f"Unknown channel: {inbound.channel}",
                media_type="text/plain",
                outcome="unknown_channel",
            )

        log = LoggerAdapter(logger, {"channel": channel.name})

        # 1. Verify origin
        try:
            self._verify(channel, inbound)
        except VerificationError as e:
            log.warning(f"Webhook rejected: {e}", context={"url": inbound.url})
            return WebhookReply(status_code=403, content="Forbidden", media_type="text/plain", outcome="rejected")

        # 2. Extract sender and text
        try:
            payload = channel.parse(inbound)
        except MalformedInputError as e:
            log.warning(f"Unreadable webhook payload: {e}")
            return self._acknowledge(channel)

        sender = (payload.sender or "").strip()
        if not sender:
            log.info("Webhook without sender, acknowledging")
            return self._acknowledge(channel)

        text = (payload.body or "").strip()
        log.info(
            f"Incoming message: {preview(text)}",
            context={"sender": sender, "message_sid": payload.message_sid},
        )
        if not text:
            return self._reply(channel, sender, MSG_PROMPT_FOR_INPUT, outcome="prompt")

        # 3-8. Identify, persist, assemble, complete
        result = self._run_turn(channel.name, sender, text, log)
        outcome = "replied" if result.ok else result.error_code

        # 9. Respond
        return self._reply(channel, sender, result.unwrap_or_fallback(), outcome=outcome)

    def _verify(self, channel: TwilioWhatsAppChannel, inbound: InboundRequest) -> None:
        if not channel.secret:
            logger.debug("Signature verification disabled: no secret configured")
            return
        if not inbound.signature:
            raise VerificationError("Missing signature header")
        if not channel.verify(inbound):
            raise VerificationError("Signature mismatch")

    def _acknowledge(self, channel: TwilioWhatsAppChannel) -> WebhookReply:
        return WebhookReply(content=channel.acknowledge(), media_type=channel.media_type, outcome="ignored")

    def _reply(self, channel: TwilioWhatsAppChannel, to: str, text: str, *, outcome: str) -> WebhookReply:
        return WebhookReply(content=channel.render(to, text), media_type=channel.media_type, outcome=outcome)

    def _run_turn(self, channel_name: str, sender: str, text: str, log: LoggerAdapter) -> Result[str]:
        db = self.session_factory()
        try:
            user_id = resolve_user_id(db, channel_name, sender)
            save_message(db, user_id, MessageRole.USER, text)
            db.commit()

            history = get_recent_history(db, user_id, self.history_limit)
            messages = build_context(self.system_prompt, history)

            completion = self._complete(messages, log)
            self._save_reply(db, user_id, completion.unwrap_or_fallback(), log)
            return completion
        except Exception as e:
            db.rollback()
            code = "persistence_error" if isinstance(e, (PersistenceError, SQLAlchemyError)) else "internal_error"
            log.error(f"Turn failed: {e}", context={"sender": sender, "error_code": code}, exc_info=True)
            return Result.failure(str(e), code, fallback=MSG_TECHNICAL_DIFFICULTY)
        finally:
            db.close()

    def _complete(self, messages: List[dict], log: LoggerAdapter) -> Result[str]:
        try:
            response = self.llm_provider.generate(
                messages,
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout_seconds=self.timeout_seconds,
            )
        # Provider boundary: timeouts and errors of any kind degrade to the fallback
        except Exception as e:
            log.error(f"Completion failed: {e}", context={"messages_count": len(messages)})
            return Result.failure(str(e), "completion_error", fallback=MSG_COMPLETION_FAILED)

        reply = ((response.content if response else None) or "").strip()
        if not reply:
            log.warning("Completion returned empty content")
            return Result.failure("empty completion", "empty_completion", fallback=MSG_EMPTY_COMPLETION)
        return Result.success(reply)

    def _save_reply(self, db: Session, user_id: UUID, reply: str, log: LoggerAdapter) -> None:
        try:
            save_message(db, user_id, MessageRole.ASSISTANT, reply)
            db.commit()
        except (PersistenceError, SQLAlchemyError) as e:
            db.rollback()
            log.error(f"Failed to persist reply, delivering anyway: {e}", context={"user_id": str(user_id)})
