"""Discord Webhook への整形・配信。"""

from .client import DiscordWebhookClient, DiscordWebhookError
from .dispatcher import DeliveryOutcome, ReleaseDispatcher, redact_webhook_url
from .templates import build_fields, build_release_payload, codify, fit_lines

__all__ = [
    "DeliveryOutcome",
    "DiscordWebhookClient",
    "DiscordWebhookError",
    "ReleaseDispatcher",
    "build_fields",
    "build_release_payload",
    "codify",
    "fit_lines",
    "redact_webhook_url",
]
