import logging
from typing import Any

import httpx

from ..errors import UpstreamError
from ..models import PortfolioType
from ..retry import PORTFOLIO_POLICY, RetryPolicy, execute

logger = logging.getLogger(__name__)

FETCH_PATH = "/api/fetch-combined-csvs-by-firm"


class PortfolioClient:
    """Client for the finance-data service that serves portfolio holdings."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        policy: RetryPolicy = PORTFOLIO_POLICY,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.policy = policy
        self._transport = transport

    async def fetch(
        self,
        client_id: str,
        banker_id: str,
        firm_name: str,
        portfolio_type: PortfolioType = PortfolioType.MASTER_PROPOSED,
    ) -> Any:
        # (None, value) tuples make httpx send plain multipart form fields.
        form = {
            "investment_banker_id": (None, str(banker_id)),
            "portfolio_type": (None, PortfolioType(portfolio_type).value),
            "firm_name": (None, firm_name),
            "client_id": (None, str(client_id)),
        }

        async def _fetch_once() -> Any:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(f"{self.base_url}{FETCH_PATH}", files=form)
                if not response.is_success:
                    error_text = response.text[:500] or "Unknown error"
                    raise UpstreamError(
                        response.status_code,
                        f"Failed to fetch portfolio data: {response.status_code} - {error_text}",
                    )
                return response.json()

        logger.info("Fetching %s portfolio for firm %s", portfolio_type, firm_name)
        return await execute(_fetch_once, self.policy, label="portfolio fetch")
