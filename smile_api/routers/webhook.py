from fastapi import APIRouter, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool

from smile_api.config import settings
from smile_api.dependencies import get_orchestrator
from smile_api.logging_config import get_logger
from smile_api.schemas.webhook import InboundRequest, StatusCallback
from smile_api.services.twilio_service import EMPTY_TWIML, SIGNATURE_HEADER, TWIML_MEDIA_TYPE, decode_form
from smile_api.services.webhook_orchestrator import WebhookOrchestrator

logger = get_logger("webhook")

router = APIRouter()


def build_public_url(request: Request, public_base_url: str = "") -> str:
    """URL the channel provider signed: the configured public base, else the forwarded request URL."""
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"
    if public_base_url:
        return f"{public_base_url.rstrip('/')}{path}"

    proto = request.headers.get("X-Forwarded-Proto", request.url.scheme).split(",")[0].strip()
    host = request.headers.get("X-Forwarded-Host") or request.headers.get("Host") or request.url.netloc
    return f"{proto}://{host.split(',')[0].strip()}{path}"


async def _handle_inbound(channel: str, request: Request, orchestrator: WebhookOrchestrator) -> Response:
    inbound = InboundRequest(
        channel=channel,
        url=build_public_url(request, settings.public_base_url),
        signature=request.headers.get(SIGNATURE_HEADER),
        content_type=request.headers.get("Content-Type", ""),
        raw_body=await request.body(),
    )

    reply = await run_in_threadpool(orchestrator.handle, inbound)
    logger.info(
        "Webhook handled",
        extra={"context": {"channel": channel, "outcome": reply.outcome, "status": reply.status_code}},
    )
    return Response(content=reply.content, status_code=reply.status_code, media_type=reply.media_type)


@router.post("/webhooks/twilio/whatsapp")
async def handle_twilio_whatsapp(request: Request, orchestrator: WebhookOrchestrator = Depends(get_orchestrator)):
    """Path configured in the Twilio console for the WhatsApp sender."""
    return await _handle_inbound("whatsapp", request, orchestrator)


@router.post("/webhooks/{channel}/message")
async def handle_message_webhook(
    channel: str,
    request: Request,
    orchestrator: WebhookOrchestrator = Depends(get_orchestrator),
):
    """Handle an inbound chat message for the given channel."""
    return await _handle_inbound(channel, request, orchestrator)


@router.post("/webhooks/{channel}/status")
async def handle_status_webhook(channel: str, request: Request):
    """Delivery receipts are logged and acknowledged, nothing else."""
    raw = await request.body()
    if "json" in request.headers.get("Content-Type", "").lower():
        logger.info("Status callback received", extra={"context": {"channel": channel, "bytes": len(raw)}})
    else:
        callback = StatusCallback.model_validate(decode_form(raw))
        logger.info(
            "Status callback received",
            extra={
                "context": {
                    "channel": channel,
                    "message_sid": callback.message_sid,
                    "status": callback.message_status,
                    "error_code": callback.error_code,
                }
            },
        )
    return Response(content=EMPTY_TWIML, media_type=TWIML_MEDIA_TYPE)
