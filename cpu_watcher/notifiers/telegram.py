"""Apprise-backed notifiers."""

import apprise
import structlog

from .base import Destination, NotificationError, Notifier

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 10


def with_timeouts(url: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Add Apprise connect/read timeouts to a URL unless it sets its own."""
    params = []
    if "cto=" not in url:
        params.append(f"cto={timeout:g}")
    if "rto=" not in url:
        params.append(f"rto={timeout:g}")
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{'&'.join(params)}"


def build_telegram_url(
    token: str, chat_id: str, timeout: float = DEFAULT_TIMEOUT
) -> str:
    """Build an Apprise URL for a Telegram bot chat."""
    if not token or not chat_id:
        raise ValueError("Telegram notifications require token and chat_id")
    return with_timeouts(f"tgram://{token}/{chat_id}", timeout)


class AppriseNotifier(Notifier):
    """Send notifications through Apprise URLs.

    Every URL is notified on its own. A message counts as delivered when at
    least one destination accepted it, so a single broken channel does not
    make the others repeat the alert on every tick.
    """

    def __init__(self, title: str = ""):
        self.logger = logger.bind(component="AppriseNotifier")
        self.title = title
        self._clients: dict[str, apprise.Apprise] = {}

    def _client(self, url: str) -> apprise.Apprise:
        client = self._clients.get(url)
        if client is None:
            client = apprise.Apprise()
            if not client.add(url):
                raise NotificationError("Invalid notification URL")
            self._clients[url] = client
            self.logger.debug(
            "Added notification channel", schema=url.split(":", 1)[0]
        )
        return client

    def _notify(self, url: str, text: str) -> bool:
        try:
            client = self._client(url)
            return bool(
                client.notify(
                    body=text,
                    title=self.title,
                    body_format=apprise.NotifyFormat.TEXT,
                )
            )
        except Exception as e:
            self.logger.error(
                "Error sending notification",
                schema=url.split(":", 1)[0],
                error=str(e),
            )
            return False

    def send(self, destination: Destination, text: str) -> bool:
        urls = [destination] if isinstance(destination, str) else list(destination)
        if not urls:
            raise NotificationError("No notification destination configured")

        failed = [url for url in urls if not self._notify(url, text)]
        delivered = len(urls) - len(failed)

        if not delivered:
            self.logger.error("Failed to send notification", destinations=len(urls))
            return False
        if failed:
            self.logger.warning(
                "Notification only partially delivered",
                delivered=delivered,
                failed=[url.split(":", 1)[0] for url in failed],
            )
        self.logger.info("Notification sent", text=text)
        return True


class LogNotifier(Notifier):
    """Log notifications instead of sending them."""

    def __init__(self):
        self.logger = logger.bind(component="LogNotifier")

    def send(self, destination: Destination, text: str) -> bool:
        self.logger.info("Notification (dry run)", text=text)
        return True
