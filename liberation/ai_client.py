"""Client for the external text-transform (AI) service."""

import re
from dataclasses import dataclass

import httpx

from .config import AIConfig
from .errors import CleaningServiceError
from .logging import get_logger

logger = get_logger("ai")

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-latest",
    "ollama": "llama3",
}
DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com",
    "ollama": "http://localhost:11434",
}

_FENCE = re.compile(r"^\s*```[\w.+-]*[ \t]*\r?\n(?P<body>[\s\S]*?)\r?\n?```\s*$")


@dataclass(frozen=True)
class TransformResult:
    """Either transformed text or the reason there is none."""

    content: str | None = None
    error: CleaningServiceError | None = None

    @classmethod
    def success(cls, content: str) -> "TransformResult":
        return cls(content=content)

    @classmethod
    def failure(cls, message: str) -> "TransformResult":
        return cls(error=CleaningServiceError(message))

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None

    def or_else(self, fallback: str) -> str:
        """The transformed text, or ``fallback`` when the call failed."""
        return self.content if self.ok else fallback


def strip_code_fences(text: str) -> str:
    """Remove a single markdown fence wrapped around a reply."""
    match = _FENCE.match(text)
    return match.group("body") if match else text


class TextTransformClient:
    """Sends one file at a time to an LLM provider and returns its rewrite."""

    def __init__(self, config: AIConfig, client: httpx.AsyncClient | None = None):
        """Initialize the client.

        Args:
            config: Provider, credentials and limits
            client: Optional pre-built HTTP client (tests inject a mock transport)
        """
        if config.provider not in DEFAULT_MODELS:
            raise ValueError(f"Unsupported AI provider: {config.provider}")
        self.config = config
        self.provider = config.provider
        self.model = config.model or DEFAULT_MODELS[self.provider]
        self.base_url = (config.base_url or DEFAULT_BASE_URLS[self.provider]).rstrip("/")
        self._client = client

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def transform(self, instruction: str, content: str) -> TransformResult:
        """Ask the service to rewrite ``content`` following ``instruction``.

        Never raises: transport errors, non-2xx answers and malformed bodies
        come back as a failed ``TransformResult``.
        """
        url, headers, payload = self._build_request(instruction, content)
        logger.debug("Submitting %d chars to %s (%s)", len(content), self.provider, self.model)
        try:
            if self._client is not None:
                response = await self._client.post(url, headers=headers, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                    response = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException:
            return TransformResult.failure(f"Timeout calling {self.provider}")
        except httpx.HTTPError as e:
            return TransformResult.failure(f"Network error calling {self.provider}: {e}")

        if response.status_code == 429:
            return TransformResult.failure(f"{self.provider} rate limit reached")
        if response.status_code >= 400:
            return TransformResult.failure(
                f"{self.provider} answered HTTP {response.status_code}"
            )

        try:
            text = self._extract_text(response.json())
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            return TransformResult.failure(f"Malformed {self.provider} reply: {e}")

        if not isinstance(text, str):
            return TransformResult.failure(f"Malformed {self.provider} reply: no text")
        return TransformResult.success(strip_code_fences(text))

    def _build_request(self, instruction: str, content: str) -> tuple[str, dict, dict]:
        if self.provider == "anthropic":
            return (
                f"{self.base_url}/v1/messages",
                {
                    "x-api-key": self.config.api_key or "",
                    "anthropic-version": "2023-06-01",
                },
                {
                    "model": self.model,
                    "max_tokens": self.config.max_tokens,
                    "system": instruction,
                    "messages": [{"role": "user", "content": content}],
                },
            )

        messages = [
            {"role": "system", "content": instruction},
            {"role": "user", "content": content},
        ]
        if self.provider == "ollama":
            return (
                f"{self.base_url}/api/chat",
                {},
                {"model": self.model, "messages": messages, "stream": False},
            )
        return (
            f"{self.base_url}/chat/completions",
            {"Authorization": f"Bearer {self.config.api_key or ''}"},
            {
                "model": self.model,
                "max_tokens": self.config.max_tokens,
                "temperature": 0,
                "messages": messages,
            },
        )

    def _extract_text(self, body: dict) -> str:
        if not isinstance(body, dict):
            raise TypeError(f"expected an object, got {type(body).__name__}")
        if self.provider == "anthropic":
            blocks = body["content"]
            if not isinstance(blocks, list):
                raise TypeError("content is not a list")
            texts = [
                block.get("text", "")
                for block in blocks
                if isinstance(block, dict) and block.get("type") == "text"
            ]
            if not texts:
                raise ValueError("no text block")
            return "".join(texts)
        if self.provider == "ollama":
            return body["message"]["content"]
        return body["choices"][0]["message"]["content"]
