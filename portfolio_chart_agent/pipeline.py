import json
import logging
from typing import Any, Protocol

from .config import Settings, get_settings
from .clients import LiveSearchClient, PortfolioClient
from .conversation import attach_file, extract_text
from .errors import InputValidationError
from .fusion import ContextFusionEngine
from .generation import ChartModel, collect_text, select_chart_invocation
from .models import ChartRequest, ChartResponse, ConversationTurn, RawModelResponse
from .normalizer import try_normalize
from .prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class GenerativeModel(Protocol):
    async def invoke(
        self, conversation: list[ConversationTurn], model: str, system_prompt: str = ...
    ) -> RawModelResponse: ...


class ChartPipeline:
    """Stateless request pipeline: fuse context, call the model, repair the chart."""

    def __init__(self, fusion: ContextFusionEngine, model: GenerativeModel):
        self.fusion = fusion
        self.model = model

    async def run(self, request: ChartRequest) -> ChartResponse:
        if not request.messages:
            raise InputValidationError("Messages array is required")
        if not request.model:
            raise InputValidationError("Model selection is required")

        logger.info(
            "Chart request: %d message(s), file=%s, live_data=%s, model=%s",
            len(request.messages),
            request.file_data.media_type if request.file_data else None,
            request.include_live_data,
            request.model,
        )

        conversation = list(request.messages)
        # The search query is the caller's own text, before any file is folded in.
        query = extract_text(conversation[-1])
        if request.file_data is not None:
            conversation = attach_file(conversation, request.file_data)

        conversation = await self.fusion.augment(
            conversation,
            request.icf_mapping,
            request.include_live_data,
            query=query,
        )

        response = await self.model.invoke(conversation, request.model, SYSTEM_PROMPT)

        invocation = select_chart_invocation(response)
        chart = try_normalize(invocation.input) if invocation else None
        return ChartResponse(
            content=collect_text(response),
            has_tool_use=bool(response.tool_invocations),
            tool_use=invocation,
            chart_data=chart,
        )


def serialize_response(response: ChartResponse) -> dict[str, Any]:
    """JSON-safe body for ``response``; drops the chart fields if they won't encode."""
    try:
        body = {
            "content": response.content,
            "hasToolUse": response.has_tool_use,
            "toolUse": (
                response.tool_use.model_dump(mode="json") if response.tool_use else None
            ),
            "chartData": response.chart_data.to_wire() if response.chart_data else None,
        }
        json.dumps(body, allow_nan=False)
        return body
    except (TypeError, ValueError) as e:
        logger.error("Error serializing response: %s", e)
        return {
            "content": response.content,
            "hasToolUse": False,
            "toolUse": None,
            "chartData": None,
            "error": "Failed to serialize response data",
        }


def build_pipeline(settings: Settings | None = None) -> ChartPipeline:
    settings = settings or get_settings()
    fusion = ContextFusionEngine(
        PortfolioClient(settings.portfolio_api_url, timeout=settings.http_timeout),
        LiveSearchClient(
            settings.perplexity_api_key,
            base_url=settings.perplexity_api_url,
            model=settings.perplexity_model,
            timeout=settings.http_timeout,
        ),
        portfolio_budget=settings.portfolio_context_chars,
    )
    return ChartPipeline(fusion, ChartModel())
