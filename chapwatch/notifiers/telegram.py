import requests

from ..errors import NotifyError
from ..utils.log import get_logger
from .templates import render_message

logger = get_logger("chapwatch.telegram")

SEND_URL = "https://api.telegram.org/bot{token}/sendMessage"
SEND_TIMEOUT = 20  # seconds


class Notifier:
    name: str = "base"

    def send(self, item) -> None:
        """Deliver one announcement for `item`; raise NotifyError on failure."""
        raise NotImplementedError


class TelegramNotifier(Notifier):
    name = "telegram"

    def __init__(self, bot_token: str, chat_id: str, session: requests.Session | None = None, timeout: float = SEND_TIMEOUT):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, item) -> None:
        data = {
            "chat_id": self.chat_id,
            "text": render_message(item),
            "disable_web_page_preview": "false",
        }
        url = SEND_URL.format(token=self.bot_token)
        try:
            r = self.session.post(url, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            raise NotifyError(item.identifier, self._redact(str(e))) from e
        if not r.ok:
            # Bot API puts the reason in "description"
            try:
                body = r.json()
            except ValueError:
                body = {}
            reason = body.get("description") if isinstance(body, dict) else None
            raise NotifyError(item.identifier, f"HTTP {r.status_code}: {reason or r.reason}")
        logger.debug("Telegram accepted message for %s", item.identifier)

    def _redact(self, text: str) -> str:
        # request URLs embed the bot token
        return text.replace(self.bot_token, "***") if self.bot_token else text


class DryRunNotifier(Notifier):
    name = "dry_run"

    def send(self, item) -> None:
        logger.info("[DRY RUN] Would send to Telegram:\n%s", render_message(item))
