import json
import logging
from typing import AsyncGenerator

import openai
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from openbb_ai import message_chunk, reasoning_step, table
from openbb_ai.models import QueryRequest
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from .clients import LiveSearchClient
from .config import get_settings
from .errors import (
    AuthenticationError,
    ConfigurationError,
    InputValidationError,
    RateLimitError,
    UpstreamError,
)
from .models import ChartRequest, ConversationTurn
from .pipeline import ChartPipeline, build_pipeline, serialize_response

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate"}
LIVE_DATA_OPTION = "live-data"

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_pipeline() -> ChartPipeline:
    return build_pipeline(get_settings())


def get_search_client() -> LiveSearchClient:
    settings = get_settings()
    return LiveSearchClient(
        settings.perplexity_api_key,
        base_url=settings.perplexity_api_url,
        model=settings.perplexity_model,
        timeout=settings.http_timeout,
    )


def error_response(error: Exception) -> JSONResponse:
    """Map a pipeline failure onto the status code of its failure class."""
    if isinstance(error, InputValidationError):
        return JSONResponse(status_code=400, content={"error": str(error)})
    if isinstance(error, (AuthenticationError, openai.AuthenticationError)):
        return JSONResponse(
            status_code=401,
            content={
                "error": "Authentication Error",
                "details": "Invalid API key or authentication failed",
            },
        )
    if isinstance(error, (RateLimitError, openai.RateLimitError)):
        return JSONResponse(
            status_code=429,
            content={
                "error": "Rate limit exceeded. Please try again later.",
                "code": 429,
            },
        )
    if isinstance(error, UpstreamError):
        status = error.status_code or 500
        return JSONResponse(
            status_code=status,
            content={"error": "API Error", "details": error.message, "code": status},
        )
    if isinstance(error, openai.APIStatusError):
        return JSONResponse(
            status_code=error.status_code,
            content={
                "error": "API Error",
                "details": error.message,
                "code": error.status_code,
            },
        )
    return JSONResponse(
        status_code=500,
        content={"error": str(error) or "An unknown error occurred"},
    )


@app.get("/agents.json")
def get_copilot_description():
    """Agent descriptor for the OpenBB Workspace."""
    return JSONResponse(
        content={
            "portfolio_chart_agent": {
                "name": "Portfolio Chart Agent",
                "description": "Answers portfolio questions with Markdown analysis and a chart, optionally enriched with holdings and live market data.",
                "image": "https://github.com/OpenBB-finance/copilot-for-terminal-pro/assets/14093308/7da2a512-93b9-478d-90bc-b8c3dd0cabcf",
                "endpoints": {"query": "/v1/query"},
                "features": {
                    "streaming": True,
                    "widget-dashboard-select": False,
                    "widget-dashboard-search": False,
                    LIVE_DATA_OPTION: {
                        "label": "Live market data",
                        "default": False,
                        "description": "Search the web for current market information before answering",
                    },
                },
            }
        }
    )


@app.post("/api/finance")
async def finance(
    request: Request, pipeline: ChartPipeline = Depends(get_pipeline)
) -> JSONResponse:
    """Answer a chat request with text and, when the model draws one, a chart."""
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(
            status_code=400, content={"error": "Invalid JSON in request body"}
        )

    if not isinstance(body, dict) or not isinstance(body.get("messages"), list):
        return JSONResponse(
            status_code=400, content={"error": "Messages array is required"}
        )
    if not body.get("model"):
        return JSONResponse(
            status_code=400, content={"error": "Model selection is required"}
        )

    try:
        chart_request = ChartRequest.model_validate(body)
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": str(e)[:500]},
        )

    try:
        response = await pipeline.run(chart_request)
    except Exception as e:
        logger.exception("Finance API error")
        return error_response(e)

    return JSONResponse(
        content=serialize_response(response), headers=NO_CACHE_HEADERS
    )


@app.post("/api/search")
async def search(
    request: Request, client: LiveSearchClient = Depends(get_search_client)
) -> JSONResponse:
    """Live web search passthrough."""

    def failure(status_code: int, error: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": error, "content": "", "citations": []},
        )

    try:
        body = await request.json()
    except ValueError:
        return failure(400, "Invalid JSON in request body")

    query = body.get("query") if isinstance(body, dict) else None
    if not isinstance(query, str):
        return failure(400, "Query cannot be empty")

    try:
        result = await client.search(query)
    except InputValidationError as e:
        return failure(400, str(e))
    except ConfigurationError as e:
        logger.error("Live search is not configured: %s", e)
        return failure(500, str(e))
    except UpstreamError as e:
        return failure(e.status_code or 500, e.message)
    except Exception as e:
        logger.exception("Live search error")
        return failure(500, str(e) or "Unknown error occurred")

    return JSONResponse(
        content={
            "success": True,
            "content": result.content,
            "citations": [c.model_dump() for c in result.citations],
        }
    )


@app.post("/v1/query")
async def query(
    request: QueryRequest, pipeline: ChartPipeline = Depends(get_pipeline)
) -> EventSourceResponse:
    """Stream the analysis and its chart data to the OpenBB Workspace."""
    workspace_options = getattr(request, "workspace_options", []) or []
    live_data = LIVE_DATA_OPTION in workspace_options

    conversation: list[ConversationTurn] = []
    for message in request.messages:
        if message.role == "human":
            conversation.append(ConversationTurn(role="user", content=message.content))
        elif message.role == "ai" and isinstance(message.content, str):
            conversation.append(
                ConversationTurn(role="assistant", content=message.content)
            )

    async def execution_loop() -> AsyncGenerator:
        if not conversation or conversation[-1].role != "user":
            yield message_chunk("How can I help with your portfolio analysis?")
            return

        if live_data:
            yield reasoning_step(
                event_type="INFO",
                message="Fetching live market data to enrich your question...",
            )

        chart_request = ChartRequest(
            messages=conversation,
            model=get_settings().chart_model,
            include_live_data=live_data,
        )
        try:
            response = await pipeline.run(chart_request)
        except Exception as e:
            logger.exception("Chart pipeline failed")
            yield message_chunk(
                f"Error generating analysis. Please try again. ({str(e)[:200]})"
            )
            return

        if response.content:
            yield message_chunk(response.content)
        if response.chart_data is not None:
            chart = response.chart_data
            yield reasoning_step(
                event_type="INFO",
                message=f"Prepared {chart.chart_type.value} chart data",
                details={"series": ", ".join(chart.chart_config) or "none"},
            )
            yield table(
                data=chart.data,
                name=chart.config.title or "Chart data",
                description=chart.config.description or "Data behind the chart",
            )

    return EventSourceResponse(
        content=(
            event.model_dump(exclude_none=True) async for event in execution_loop()
        ),
        media_type="text/event-stream",
    )


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=get_settings().log_level)
    uvicorn.run("portfolio_chart_agent.main:app", host="0.0.0.0", port=7777, reload=True)
