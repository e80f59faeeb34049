"""Merges portfolio holdings and live search results into the last user turn."""

import asyncio
import json
import logging
from typing import Any, Protocol

from .conversation import extract_text, replace_text
from .models import (
    ContextIdentifiers,
    ConversationTurn,
    LiveSearchResult,
    PortfolioType,
    SupplementaryContext,
)
from .prompts import (
    ANALYSIS_INSTRUCTIONS,
    COMBINE_SOURCES_INSTRUCTION,
    LIVE_SEARCH_SECTION,
    PORTFOLIO_SECTION,
    USE_LIVE_SEARCH_INSTRUCTION,
    USE_PORTFOLIO_INSTRUCTION,
)

logger = logging.getLogger(__name__)

PORTFOLIO_CONTEXT_CHARS = 3000


class PortfolioSource(Protocol):
    async def fetch(
        self,
        client_id: str,
        banker_id: str,
        firm_name: str,
        portfolio_type: PortfolioType = ...,
    ) -> Any: ...


class LiveSearchSource(Protocol):
    async def search(self, query: str) -> LiveSearchResult: ...


def summarize_portfolio(blob: Any, budget: int = PORTFOLIO_CONTEXT_CHARS) -> str:
    """Render ``blob`` for the prompt, truncated to ``budget`` characters."""
    if isinstance(blob, str):
        return blob[:budget]
    return json.dumps(blob, indent=2, ensure_ascii=False)[:budget]


def build_augmented_prompt(
    query: str,
    context: SupplementaryContext,
    identifiers: ContextIdentifiers | None = None,
    budget: int = PORTFOLIO_CONTEXT_CHARS,
) -> str:
    """Compose the replacement text for the last turn.

    The portfolio section always precedes the live search section so that the
    same inputs produce the same prompt.
    """
    prompt = f"Original Query: {query}\n\n"
    instructions = []

    if context.portfolio is not None:
        prompt += (
            PORTFOLIO_SECTION.format(
                account=(identifiers and identifiers.firm_account_name) or "Account",
                firm=(identifiers and identifiers.firm_name) or "Firm",
                summary=summarize_portfolio(context.portfolio, budget),
            )
            + "\n"
        )
        instructions.append(USE_PORTFOLIO_INSTRUCTION)

    if context.live_search is not None:
        prompt += (
            LIVE_SEARCH_SECTION.format(
                content=context.live_search.content,
                citation_count=context.live_search.citation_count,
            )
            + "\n"
        )
        instructions.append(USE_LIVE_SEARCH_INSTRUCTION)

    if context.portfolio is not None and context.live_search is not None:
        instructions.append(COMBINE_SOURCES_INSTRUCTION)

    return prompt + ANALYSIS_INSTRUCTIONS.format(instructions="\n".join(instructions))


class ContextFusionEngine:
    def __init__(
        self,
        portfolio_client: PortfolioSource,
        search_client: LiveSearchSource,
        portfolio_budget: int = PORTFOLIO_CONTEXT_CHARS,
    ):
        self.portfolio_client = portfolio_client
        self.search_client = search_client
        self.portfolio_budget = portfolio_budget

    async def _fetch_portfolio(self, identifiers: ContextIdentifiers | None) -> Any | None:
        if identifiers is None or not identifiers.is_complete:
            logger.warning(
                "Skipping portfolio fetch: missing firm_name, client_id or investment_banker_id"
            )
            return None
        try:
            blob = await self.portfolio_client.fetch(
                identifiers.client_id,
                identifiers.investment_banker_id,
                identifiers.firm_name,
                PortfolioType.MASTER_PROPOSED,
            )
        except Exception:
            logger.exception("Error fetching portfolio data; continuing without it")
            return None
        logger.info("Portfolio data fetched for firm %s", identifiers.firm_name)
        return blob

    async def _search(self, query: str) -> LiveSearchResult | None:
        if not query.strip():
            return None
        try:
            result = await self.search_client.search(query)
        except Exception:
            logger.exception("Error calling live search; continuing without it")
            return None
        if not result.content:
            logger.warning("Live search returned no content")
            return None
        logger.info("Live search completed with %d citation(s)", result.citation_count)
        return result

    async def gather(
        self, query: str, identifiers: ContextIdentifiers | None
    ) -> SupplementaryContext:
        """Fetch both sources concurrently; either may come back empty."""
        portfolio, live_search = await asyncio.gather(
            self._fetch_portfolio(identifiers), self._search(query)
        )
        return SupplementaryContext(portfolio=portfolio, live_search=live_search)

    async def augment(
        self,
        conversation: list[ConversationTurn],
        identifiers: ContextIdentifiers | None,
        include_live_data: bool,
        query: str | None = None,
    ) -> list[ConversationTurn]:
        """Return ``conversation`` with supplementary data fused into its last turn.

        ``query`` defaults to the text of the last turn. The input list is never
        modified; when nothing could be fetched it is returned as-is.
        """
        if not include_live_data or not conversation:
            return conversation

        if query is None:
            query = extract_text(conversation[-1])

        context = await self.gather(query, identifiers)
        if context.is_empty:
            return conversation

        logger.info(
            "Rebuilding prompt (portfolio=%s, live_search=%s)",
            context.portfolio is not None,
            context.live_search is not None,
        )
        prompt = build_augmented_prompt(
            query, context, identifiers, self.portfolio_budget
        )
        return [*conversation[:-1], replace_text(conversation[-1], prompt)]
