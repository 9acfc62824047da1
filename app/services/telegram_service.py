from __future__ import annotations

from dataclasses import dataclass
import http.client
import json
from urllib import error, parse, request

from app.services.delivery_errors import ChannelDeliveryError


DEFAULT_TELEGRAM_API_BASE = "https://api.telegram.org"

_MARKDOWN_V2_SPECIAL = "\\_*[]()~`>#+-=|{}.!"


class TelegramDeliveryError(ChannelDeliveryError):
    pass


@dataclass(frozen=True)
class TelegramSendResult:
    message_id: int | None
    raw: dict[str, object]


def escape_markdown_v2(value: str) -> str:
    return "".join(f"\\{ch}" if ch in _MARKDOWN_V2_SPECIAL else ch for ch in value)


def _is_rate_limited(status: int | None, description: str) -> bool:
    return status == 429 or "too many requests" in description.lower()


def _call_bot_api(
    *,
    api_base: str,
    bot_token: str,
    method: str,
    fields: dict[str, str],
    timeout_seconds: float,
) -> dict[str, object]:
    """POST one Bot API method and return the decoded ``result`` envelope.

    Every transport or protocol failure surfaces as ``TelegramDeliveryError``;
    server-side and connection problems are marked retryable.
    """
    req = request.Request(
        f"{api_base.rstrip('/')}/bot{bot_token}/{method}",
        data=parse.urlencode(fields).encode("utf-8"),
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        method="POST",
    )
    try:
        with request.urlopen(req, timeout=timeout_seconds) as response:  # noqa: S310
            body = response.read()
    except error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        retryable = _is_rate_limited(exc.code, detail) or exc.code >= 500
        raise TelegramDeliveryError(f"Telegram API HTTP {exc.code}: {detail}", retryable=retryable) from exc
    except error.URLError as exc:
        raise TelegramDeliveryError(f"Telegram delivery failed: {exc.reason}", retryable=True) from exc
    except TimeoutError as exc:
        raise TelegramDeliveryError("Telegram delivery timed out.", retryable=True) from exc
    except (OSError, http.client.HTTPException) as exc:
        # Dropped connections and truncated responses after the request went out.
        raise TelegramDeliveryError(
            f"Telegram connection error: {exc.__class__.__name__}: {exc}", retryable=True
        ) from exc

    try:
        envelope = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TelegramDeliveryError("Telegram API returned invalid JSON.", retryable=True) from exc
    if not isinstance(envelope, dict):
        raise TelegramDeliveryError("Telegram API returned an unexpected payload.", retryable=True)

    if not envelope.get("ok"):
        description = str(envelope.get("description") or "unknown Telegram API error")
        raise TelegramDeliveryError(
            f"Telegram API rejected message: {description}",
            retryable=_is_rate_limited(envelope.get("error_code"), description),
        )
    return envelope


def send_telegram_message(
    *,
    bot_token: str,
    chat_id: str,
    text: str,
    parse_mode: str | None = None,
    timeout_seconds: float = 10.0,
    api_base: str = DEFAULT_TELEGRAM_API_BASE,
) -> TelegramSendResult:
    token = bot_token.strip()
    chat = chat_id.strip()
    if not token:
        raise TelegramDeliveryError("Telegram bot token is required.")
    if not chat:
        raise TelegramDeliveryError("Telegram chat ID is required.")

    fields = {"chat_id": chat, "text": text}
    if parse_mode:
        fields["parse_mode"] = parse_mode
    envelope = _call_bot_api(
        api_base=api_base,
        bot_token=token,
        method="sendMessage",
        fields=fields,
        timeout_seconds=timeout_seconds,
    )

    result = envelope.get("result")
    message_id = result.get("message_id") if isinstance(result, dict) else None
    return TelegramSendResult(message_id=message_id if isinstance(message_id, int) else None, raw=envelope)
