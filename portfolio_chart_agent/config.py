import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv(".env")


@dataclass(frozen=True)
class Settings:
    chart_model: str = "gpt-4o"
    portfolio_api_url: str = "https://apis.weidentify.ai"
    perplexity_api_key: str | None = None
    perplexity_api_url: str = "https://api.perplexity.ai"
    perplexity_model: str = "sonar-pro"
    http_timeout: float = 30.0
    portfolio_context_chars: int = 3000
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Read the agent settings from the environment (and `.env`, if present)."""
    return Settings(
        chart_model=os.environ.get("CHART_MODEL", "gpt-4o"),
        portfolio_api_url=os.environ.get(
            "PORTFOLIO_API_URL", "https://apis.weidentify.ai"
        ).rstrip("/"),
        perplexity_api_key=os.environ.get("PERPLEXITY_API_KEY") or None,
        perplexity_api_url=os.environ.get(
            "PERPLEXITY_API_URL", "https://api.perplexity.ai"
        ).rstrip("/"),
        perplexity_model=os.environ.get("PERPLEXITY_MODEL", "sonar-pro"),
        http_timeout=float(os.environ.get("HTTP_TIMEOUT", "30")),
        portfolio_context_chars=int(os.environ.get("PORTFOLIO_CONTEXT_CHARS", "3000")),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
