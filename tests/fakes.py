"""In-memory stand-ins for the pipeline's collaborators."""

from portfolio_chart_agent.errors import UpstreamError
from portfolio_chart_agent.models import (
    Citation,
    LiveSearchResult,
    RawModelResponse,
    TextBlock,
    ToolInvocation,
)


class FakePortfolioClient:
    def __init__(self, blob=None, error=None):
        self.blob = blob
        self.error = error
        self.calls = []

    async def fetch(self, client_id, banker_id, firm_name, portfolio_type=None):
        self.calls.append((client_id, banker_id, firm_name, portfolio_type))
        if self.error is not None:
            raise self.error
        return self.blob


class FakeSearchClient:
    def __init__(self, content="", citations=(), error=None):
        self.content = content
        self.citations = [Citation(title=c, url=c) for c in citations]
        self.error = error
        self.queries = []

    async def search(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return LiveSearchResult(content=self.content, citations=self.citations)


class FakeChartModel:
    def __init__(self, blocks=None, error=None):
        self.blocks = blocks if blocks is not None else [TextBlock(text="Analysis")]
        self.error = error
        self.conversations = []

    async def invoke(self, conversation, model, system_prompt=None):
        self.conversations.append(conversation)
        if self.error is not None:
            raise self.error
        return RawModelResponse(blocks=self.blocks, stop_reason="stop")


def chart_invocation(tool_input, name="generate_graph_data", id="call_1"):
    return ToolInvocation(id=id, name=name, input=tool_input)


UNAVAILABLE = UpstreamError(503, "Service unavailable")
