from .live_search import LiveSearchClient
from .portfolio import PortfolioClient

__all__ = ["LiveSearchClient", "PortfolioClient"]
