import json
import logging
from typing import Any, Callable

import openai

from .conversation import to_chat_messages
from .models import ConversationTurn, RawModelResponse, TextBlock, ToolInvocation
from .prompts import CHART_TOOL_NAME, CHART_TOOLS, SYSTEM_PROMPT
from .retry import GENERATION_POLICY, RetryPolicy, execute

logger = logging.getLogger(__name__)


def _decode_arguments(arguments: str | None) -> dict[str, Any]:
    try:
        decoded = json.loads(arguments or "{}")
    except json.JSONDecodeError:
        logger.warning("Tool call arguments are not valid JSON: %s", (arguments or "")[:200])
        return {}
    return decoded if isinstance(decoded, dict) else {}


def to_raw_response(completion: Any) -> RawModelResponse:
    """Map a chat completion onto text blocks and tool invocations."""
    choice = completion.choices[0]
    message = choice.message
    blocks: list[TextBlock | ToolInvocation] = []
    if message.content:
        blocks.append(TextBlock(text=message.content))
    for tool_call in message.tool_calls or []:
        blocks.append(
            ToolInvocation(
                id=tool_call.id,
                name=tool_call.function.name,
                input=_decode_arguments(tool_call.function.arguments),
            )
        )
    return RawModelResponse(blocks=blocks, stop_reason=choice.finish_reason)


def collect_text(response: RawModelResponse) -> str:
    return "\n\n".join(block.text for block in response.text_blocks)


def select_chart_invocation(response: RawModelResponse) -> ToolInvocation | None:
    """Prefer the chart tool call; otherwise fall back to the first tool call."""
    invocations = response.tool_invocations
    for invocation in invocations:
        if invocation.name == CHART_TOOL_NAME:
            return invocation
    return invocations[0] if invocations else None


class ChartModel:
    """Calls the chat model with the charting tool attached."""

    def __init__(
        self,
        policy: RetryPolicy = GENERATION_POLICY,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        client_factory: Callable[[], Any] | None = None,
    ):
        self.policy = policy
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client_factory = client_factory

    def _client(self):
        if self._client_factory is not None:
            return self._client_factory()
        # The retry executor owns retries; the SDK must not add its own.
        return openai.AsyncOpenAI(max_retries=0)

    async def invoke(
        self,
        conversation: list[ConversationTurn],
        model: str,
        system_prompt: str = SYSTEM_PROMPT,
        tools: list[dict] = CHART_TOOLS,
    ) -> RawModelResponse:
        client = self._client()
        messages = to_chat_messages(conversation, system_prompt)
        logger.info(
            "Calling %s with %d message(s) and tools %s",
            model,
            len(messages),
            [tool["function"]["name"] for tool in tools],
        )

        async def _create():
            return await client.chat.completions.create(
                model=model,
                messages=messages,
                tools=tools,
                tool_choice="auto",
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )

        completion = await execute(_create, self.policy, label="chart model")
        response = to_raw_response(completion)
        logger.info(
            "Model response received (stop_reason=%s, text_blocks=%d, tool_calls=%d)",
            response.stop_reason,
            len(response.text_blocks),
            len(response.tool_invocations),
        )
        return response
