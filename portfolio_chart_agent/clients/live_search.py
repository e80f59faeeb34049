import json
import logging
from typing import Any

import httpx

from ..errors import (
    AuthenticationError,
    ConfigurationError,
    InputValidationError,
    RateLimitError,
    UpstreamError,
)
from ..models import Citation, LiveSearchResult
from ..retry import LIVE_SEARCH_POLICY, RetryPolicy, execute

logger = logging.getLogger(__name__)


def _parse_citations(raw: Any) -> list[Citation]:
    """Accept both ``{title, url}`` objects and bare URL strings."""
    result: list[Citation] = []
    for item in raw or []:
        if isinstance(item, str):
            result.append(Citation(title=item, url=item))
        elif isinstance(item, dict):
            url = str(item.get("url") or "")
            result.append(Citation(title=str(item.get("title") or url), url=url))
    return result


def _extract_content(data: Any) -> str:
    """Answer text of a chat-completions body; raises UpstreamError on a bad shape."""
    if not isinstance(data, dict):
        raise UpstreamError(502, "Unexpected response shape from live search API")
    choices = data.get("choices") or [{}]
    choice = choices[0] if isinstance(choices, list) else None
    message = choice.get("message") if isinstance(choice, dict) else None
    if not isinstance(choice, dict) or not isinstance(message or {}, dict):
        raise UpstreamError(502, "Unexpected response shape from live search API")
    content = (message or {}).get("content") or ""
    if not isinstance(content, str):
        raise UpstreamError(502, "Unexpected response shape from live search API")
    return content


class LiveSearchClient:
    """Answers natural-language queries with current web and market information."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.perplexity.ai",
        model: str = "sonar-pro",
        timeout: float = 30.0,
        policy: RetryPolicy = LIVE_SEARCH_POLICY,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.policy = policy
        self._transport = transport

    async def search(self, query: str) -> LiveSearchResult:
        if not query or not query.strip():
            raise InputValidationError("Query cannot be empty")
        if not self.api_key:
            raise ConfigurationError("PERPLEXITY_API_KEY is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": query}],
            "max_tokens": 1024,
            "temperature": 0.0,
        }

        async def _search_once() -> dict:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions", headers=headers, json=payload
                )
            if response.status_code == 429:
                raise RateLimitError()
            if response.status_code == 401:
                raise AuthenticationError(
                    "Invalid API key. Please check your PERPLEXITY_API_KEY."
                )
            if not response.is_success:
                logger.error("Live search error: %s", response.text[:500])
                raise UpstreamError(
                    response.status_code,
                    f"API error: {response.status_code} {response.reason_phrase}",
                )
            try:
                return response.json()
            except json.JSONDecodeError as e:
                raise UpstreamError(
                    502, "Invalid JSON response from live search API"
                ) from e

        logger.info("Calling live search with query: %s...", query[:50])
        data = await execute(_search_once, self.policy, label="live search")

        content = _extract_content(data)
        citations = _parse_citations(data.get("citations") or data.get("search_results"))
        logger.info(
            "Live search success. Content length: %d, citations: %d",
            len(content),
            len(citations),
        )
        return LiveSearchResult(content=content, citations=citations)
