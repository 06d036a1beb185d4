from smile_api.schemas.webhook import InboundPayload, InboundRequest, StatusCallback, WebhookReply

__all__ = ["InboundRequest", "InboundPayload", "StatusCallback", "WebhookReply"]
