import httpx
import openai
import pytest
from fastapi.testclient import TestClient
from openbb_ai.testing import CopilotResponse

from portfolio_chart_agent.errors import RateLimitError, UpstreamError
from portfolio_chart_agent.fusion import ContextFusionEngine
from portfolio_chart_agent.main import app, get_pipeline, get_search_client
from portfolio_chart_agent.models import TextBlock
from portfolio_chart_agent.pipeline import ChartPipeline

from .fakes import (
    UNAVAILABLE,
    FakeChartModel,
    FakePortfolioClient,
    FakeSearchClient,
    chart_invocation,
)

test_client = TestClient(app)

BAR_INPUT = {
    "chartType": "bar",
    "config": {"title": "Top holdings", "description": "By weight"},
    "data": [{"ticker": "AAPL", "weight": 30}, {"ticker": "MSFT", "weight": 25}],
    "chartConfig": {"weight": {"label": "Weight"}},
}


@pytest.fixture(autouse=True)
def reset_sse_starlette_appstatus_event():
    """
    Fixture that resets the appstatus event in the sse_starlette app.
    Should be used on any test that uses sse_starlette to stream events.
    """
    # See https://github.com/sysid/sse-starlette/issues/59
    from sse_starlette.sse import AppStatus

    AppStatus.should_exit_event = None


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


def use_model(model, search=None):
    """Serve requests with ``model`` and failing (or given) context sources."""
    fusion = ContextFusionEngine(
        FakePortfolioClient(error=UNAVAILABLE),
        search or FakeSearchClient(error=UNAVAILABLE),
    )
    app.dependency_overrides[get_pipeline] = lambda: ChartPipeline(fusion, model)
    return model


def test_agents_json():
    """Test that the agents.json endpoint returns the correct configuration."""
    response = test_client.get("/agents.json")
    assert response.status_code == 200

    agent_config = response.json()["portfolio_chart_agent"]
    assert agent_config["name"] == "Portfolio Chart Agent"
    assert agent_config["endpoints"]["query"] == "/v1/query"
    assert agent_config["features"]["streaming"] is True
    assert agent_config["features"]["live-data"]["default"] is False


def test_finance_returns_text_and_chart():
    use_model(FakeChartModel(blocks=[TextBlock(text="## Holdings"), chart_invocation(BAR_INPUT)]))

    response = test_client.post(
        "/api/finance",
        json={"messages": [{"role": "user", "content": "Top holdings?"}], "model": "gpt-4o"},
    )

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    body = response.json()
    assert body["content"] == "## Holdings"
    assert body["hasToolUse"] is True
    assert body["toolUse"]["input"] == BAR_INPUT
    assert body["chartData"]["chartConfig"]["weight"]["color"] == "hsl(var(--chart-1))"
    assert body["chartData"]["data"] == BAR_INPUT["data"]


def test_finance_malformed_chart_returns_text_only():
    use_model(
        FakeChartModel(
            blocks=[
                TextBlock(text="Analysis text"),
                chart_invocation({**BAR_INPUT, "data": '"[not json'}),
            ]
        )
    )

    response = test_client.post(
        "/api/finance",
        json={"messages": [{"role": "user", "content": "Chart it"}], "model": "gpt-4o"},
    )

    assert response.status_code == 200
    assert response.json()["content"] == "Analysis text"
    assert response.json()["chartData"] is None


@pytest.mark.parametrize(
    "payload, error",
    [
        ({"model": "gpt-4o"}, "Messages array is required"),
        ({"messages": "hello", "model": "gpt-4o"}, "Messages array is required"),
        ({"messages": [{"role": "user", "content": "hi"}]}, "Model selection is required"),
        ({"messages": [], "model": "gpt-4o"}, "Messages array is required"),
    ],
)
def test_finance_input_validation(payload, error):
    model = use_model(FakeChartModel())
    response = test_client.post("/api/finance", json=payload)
    assert response.status_code == 400
    assert response.json()["error"] == error
    assert model.conversations == []


def test_finance_rejects_invalid_json():
    response = test_client.post(
        "/api/finance", content="{not json", headers={"content-type": "application/json"}
    )
    assert response.status_code == 400


def test_finance_rejects_non_utf8_body():
    response = test_client.post(
        "/api/finance", content=b"\x80\x81", headers={"content-type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid JSON in request body"


def test_finance_non_finite_chart_values_keep_text():
    use_model(
        FakeChartModel(
            blocks=[
                TextBlock(text="January looked odd"),
                chart_invocation(
                    {**BAR_INPUT, "data": '[{"ticker": "AAPL", "weight": NaN}]'}
                ),
            ]
        )
    )

    response = test_client.post(
        "/api/finance",
        json={"messages": [{"role": "user", "content": "Chart it"}], "model": "gpt-4o"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["content"] == "January looked odd"
    assert body["chartData"] is None
    assert body["error"] == "Failed to serialize response data"


def test_finance_maps_openai_authentication_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    error = openai.AuthenticationError(
        "Incorrect API key", response=httpx.Response(401, request=request), body=None
    )
    use_model(FakeChartModel(error=error))

    response = test_client.post(
        "/api/finance",
        json={"messages": [{"role": "user", "content": "hi"}], "model": "gpt-4o"},
    )

    assert response.status_code == 401
    assert response.json()["error"] == "Authentication Error"


def test_finance_maps_rate_limit():
    use_model(FakeChartModel(error=RateLimitError()))
    response = test_client.post(
        "/api/finance",
        json={"messages": [{"role": "user", "content": "hi"}], "model": "gpt-4o"},
    )
    assert response.status_code == 429
    assert "try again later" in response.json()["error"]


def test_finance_passes_through_upstream_status():
    use_model(FakeChartModel(error=UpstreamError(503, "overloaded")))
    response = test_client.post(
        "/api/finance",
        json={"messages": [{"role": "user", "content": "hi"}], "model": "gpt-4o"},
    )
    assert response.status_code == 503
    assert response.json() == {"error": "API Error", "details": "overloaded", "code": 503}


def test_finance_unknown_error_is_500():
    use_model(FakeChartModel(error=RuntimeError("boom")))
    response = test_client.post(
        "/api/finance",
        json={"messages": [{"role": "user", "content": "hi"}], "model": "gpt-4o"},
    )
    assert response.status_code == 500
    assert response.json() == {"error": "boom"}


def test_search_endpoint_success():
    app.dependency_overrides[get_search_client] = lambda: FakeSearchClient(
        "Markets rallied", citations=["https://news.example"]
    )
    response = test_client.post("/api/search", json={"query": "market news"})
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "content": "Markets rallied",
        "citations": [{"title": "https://news.example", "url": "https://news.example"}],
    }


def test_search_endpoint_rejects_blank_query():
    response = test_client.post("/api/search", json={"query": "  "})
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["error"] == "Query cannot be empty"


def test_search_endpoint_reports_rate_limit():
    app.dependency_overrides[get_search_client] = lambda: FakeSearchClient(
        error=RateLimitError()
    )
    response = test_client.post("/api/search", json={"query": "market news"})
    assert response.status_code == 429
    assert response.json()["citations"] == []


def test_query_streams_text_and_chart_table():
    use_model(FakeChartModel(blocks=[TextBlock(text="Your top holdings"), chart_invocation(BAR_INPUT)]))

    response = test_client.post(
        "/v1/query", json={"messages": [{"role": "human", "content": "Top holdings?"}]}
    )

    assert response.status_code == 200
    copilot_response = CopilotResponse(response.text)
    assert copilot_response.has_any("copilotMessage", "Your top holdings")
    assert "copilotMessageArtifact" in response.text
    assert "Top holdings" in response.text


def test_query_with_live_data_option_enriches_prompt():
    model = use_model(FakeChartModel(), search=FakeSearchClient("Markets rallied"))

    response = test_client.post(
        "/v1/query",
        json={
            "messages": [{"role": "human", "content": "How are markets?"}],
            "workspace_options": ["live-data"],
        },
    )

    assert response.status_code == 200
    assert "Markets rallied" in model.conversations[0][-1].content


def test_query_streams_generation_errors():
    use_model(FakeChartModel(error=UpstreamError(500, "model down")))

    response = test_client.post(
        "/v1/query", json={"messages": [{"role": "human", "content": "Hello"}]}
    )

    assert response.status_code == 200
    assert CopilotResponse(response.text).has_any("copilotMessage", "Error generating analysis")


def test_query_no_messages():
    """Test query with empty messages list."""
    response = test_client.post("/v1/query", json={"messages": []})
    assert "messages list cannot be empty" in response.text


def test_search_endpoint_reports_malformed_upstream_response():
    app.dependency_overrides[get_search_client] = lambda: FakeSearchClient(
        error=UpstreamError(502, "Unexpected response shape from live search API")
    )
    response = test_client.post("/api/search", json={"query": "market news"})
    assert response.status_code == 502
    assert response.json()["success"] is False
