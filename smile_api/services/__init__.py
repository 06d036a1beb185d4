from smile_api.services.context_service import build_context
from smile_api.services.identity_service import resolve_user_id
from smile_api.services.message_service import (
    get_recent_history,
    save_message,
)
from smile_api.services.result import Result
from smile_api.services.webhook_orchestrator import WebhookOrchestrator
