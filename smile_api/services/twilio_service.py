"""Twilio WhatsApp channel: request signatures, TwiML replies, Messages API delivery."""

import base64
import hashlib
import hmac
import json
from typing import Mapping, Optional
from urllib.parse import parse_qs, parse_qsl, urlparse
from xml.sax.saxutils import escape

import httpx
from pydantic import ValidationError

from smile_api.errors import MalformedInputError
from smile_api.logging_config import get_logger
from smile_api.schemas.webhook import InboundPayload, InboundRequest

logger = get_logger("twilio_service")

SIGNATURE_HEADER = "X-Twilio-Signature"
TWIML_MEDIA_TYPE = "application/xml"
TWILIO_API_BASE_URL = "https://api.twilio.com/2010-04-01"
EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


def compute_signature(auth_token: str, url: str, params: Optional[Mapping[str, str]] = None) -> str:
    """HMAC-SHA1 of the URL followed by every POST param (key then value, sorted by key)."""
    payload = url
    if params:
        payload += "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), payload.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def validate_signature(
    auth_token: str,
    signature: Optional[str],
    url: str,
    params: Optional[Mapping[str, str]] = None,
    body: Optional[bytes] = None,
) -> bool:
    """
    Check a Twilio request signature.

    Form posts are signed over URL + params. Non-form bodies are signed over
    the URL alone, which carries a bodySHA256 query param that must match the body.
    """
    if not auth_token or not signature:
        return False

    if body is not None:
        body_hash = parse_qs(urlparse(url).query).get("bodySHA256", [""])[0]
        if not body_hash:
            return False
        expected_hash = hashlib.sha256(body).hexdigest()
        if not hmac.compare_digest(expected_hash, body_hash):
            return False
        params = None

    expected = compute_signature(auth_token, url, params)
    return hmac.compare_digest(expected, signature)


def render_twiml_message(text: str) -> str:
    return f'<?xml version="1.0" encoding="UTF-8"?><Response><Message>{escape(text)}</Message></Response>'


def _is_form(content_type: str) -> bool:
    return not content_type or "application/x-www-form-urlencoded" in content_type.lower()


def decode_form(raw_body: bytes) -> dict[str, str]:
    return dict(parse_qsl(raw_body.decode("utf-8", errors="replace"), keep_blank_values=True))


def decode_body(inbound: InboundRequest) -> dict:
    """Decode a form-encoded or JSON webhook body into a flat dict."""
    if _is_form(inbound.content_type):
        return decode_form(inbound.raw_body)

    try:
        data = json.loads(inbound.raw_body.decode("utf-8", errors="replace") or "{}")
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"Invalid JSON body: {e}") from e
    if not isinstance(data, dict):
        raise MalformedInputError("JSON body must be an object")
    return data


class TwilioMessagingClient:
    """Push messages through the Twilio Messages REST API."""

    def __init__(self, account_sid: str, auth_token: str, from_number: str, timeout_seconds: float = 15.0):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout_seconds = timeout_seconds

    @property
    def messages_url(self) -> str:
        return f"{TWILIO_API_BASE_URL}/Accounts/{self.account_sid}/Messages.json"

    def send_message(self, to: str, body: str) -> bool:
        if not self.account_sid or not self.auth_token or not self.from_number:
            logger.error("Twilio credentials are missing (TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN/TWILIO_WHATSAPP_NUMBER)")
            return False

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    self.messages_url,
                    auth=(self.account_sid, self.auth_token),
                    data={"From": self.from_number, "To": to, "Body": body},
                )
            logger.info(f"Twilio response: status={response.status_code}, to={to}")
            if response.status_code not in (200, 201):
                logger.warning(f"Twilio send failed: {response.text[:200]}")
                return False
            return True
        except httpx.HTTPError as e:
            logger.error(f"Error sending WhatsApp message: {e}")
            return False


class TwilioWhatsAppChannel:
    """WhatsApp over Twilio: verifies deliveries and renders replies."""

    name = "whatsapp"
    media_type = TWIML_MEDIA_TYPE

    def __init__(
        self,
        auth_token: str = "",
        reply_mode: str = "twiml",
        messaging_client: Optional[TwilioMessagingClient] = None,
    ):
        if reply_mode not in ("twiml", "api"):
            raise ValueError(f"Unknown reply mode: {reply_mode}")
        if reply_mode == "api" and messaging_client is None:
            raise ValueError("reply_mode 'api' requires a messaging client")
        self.secret = auth_token
        self.reply_mode = reply_mode
        self.messaging_client = messaging_client

    def verify(self, inbound: InboundRequest) -> bool:
        if _is_form(inbound.content_type):
            return validate_signature(self.secret, inbound.signature, inbound.url, decode_form(inbound.raw_body))
        return validate_signature(self.secret, inbound.signature, inbound.url, body=inbound.raw_body)

    def parse(self, inbound: InboundRequest) -> InboundPayload:
        try:
            return InboundPayload.model_validate(decode_body(inbound))
        except ValidationError as e:
            raise MalformedInputError(f"Unexpected payload: {e.error_count()} errors") from e

    def acknowledge(self) -> str:
        return EMPTY_TWIML

    def render(self, to: str, text: str) -> str:
        if self.reply_mode == "api":
            self.messaging_client.send_message(to, text)
            return EMPTY_TWIML
        return render_twiml_message(text)
