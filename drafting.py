import logging
from typing import Optional

import requests

from errors import DraftUnavailable

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
SYSTEM_INSTRUCTION = (
    "You are a professional assistant helping write polite and helpful business replies to clients."
)
MAX_TOKENS = 1000


class ReplyDrafter:
    """Client for the chat-completion service that drafts contact replies."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "deepseek/deepseek-r1-0528:free",
        timeout: float = 20.0,
        endpoint: str = OPENROUTER_URL,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.endpoint = endpoint

    def draft(self, content: str) -> str:
        if not self.api_key:
            raise DraftUnavailable("Reply generation is not configured")

        payload = {
            "model": self.model,
            "temperature": 0.7,
            "max_tokens": MAX_TOKENS,
            "messages": [
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": content},
            ],
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        try:
            response = requests.post(self.endpoint, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            text = response.json()["choices"][0]["message"]["content"]
        except requests.exceptions.RequestException as exc:
            logger.warning("reply generation request failed: %s", exc)
            raise DraftUnavailable() from exc
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.warning("reply generation returned a malformed body: %s", exc)
            raise DraftUnavailable() from exc

        if not isinstance(text, str) or not text.strip():
            raise DraftUnavailable()
        return text.strip()
