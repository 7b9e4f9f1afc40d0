"""
Telegram transport: fire-and-forget sink for alert messages.
"""
import httpx

TELEGRAM_API = "https://api.telegram.org"


class TransportError(Exception):
    """A message could not be delivered to the notification channel."""

    def __init__(self, message: str, transient: bool = True):
        super().__init__(message)
        self.transient = transient


class TelegramChannel:
    """Sends text to one chat through the Bot API."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        parse_mode: str = "HTML",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.chat_id = chat_id
        self.parse_mode = parse_mode
        self._url = f"{TELEGRAM_API}/bot{bot_token}/sendMessage"
        self._timeout = timeout
        self._client = client

    async def send(self, text: str) -> None:
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": self.parse_mode,
            "disable_web_page_preview": True,
        }
        try:
            if self._client is not None:
                resp = await self._client.post(self._url, json=payload, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(self._url, json=payload)
        except httpx.HTTPError as e:
            raise TransportError(f"telegram request failed: {e}") from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransportError(f"telegram returned {resp.status_code}")
        if resp.status_code >= 400:
            # Bad token, unknown chat or malformed markup: permanent
            raise TransportError(
                f"telegram rejected message ({resp.status_code}): {resp.text[:200]}",
                transient=False,
            )

