from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- Conversation ---


class TextPart(_Model):
    type: Literal["text"] = "text"
    text: str = ""


class BinaryPart(_Model):
    """Inline binary content (an uploaded image or document)."""

    type: Literal["image", "file"] = "image"
    media_type: str = Field(alias="mediaType")
    data: str


ContentPart = Annotated[Union[TextPart, BinaryPart], Field(discriminator="type")]


class ConversationTurn(_Model):
    role: Literal["user", "assistant"]
    content: Union[str, list[ContentPart]]

    @property
    def is_structured(self) -> bool:
        return not isinstance(self.content, str)


class ContextIdentifiers(_Model):
    client_id: str | None = Field(default=None, alias="clientId")
    investment_banker_id: str | None = Field(default=None, alias="bankerId")
    firm_name: str | None = Field(default=None, alias="firmName")
    firm_account_name: str | None = Field(default=None, alias="accountName")

    @field_validator("*", mode="before")
    @classmethod
    def _as_string(cls, value: Any) -> Any:
        # Identifiers are opaque; numeric ids from the client are kept as text.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def is_complete(self) -> bool:
        return bool(self.client_id and self.investment_banker_id and self.firm_name)


class PortfolioType(str, Enum):
    MASTER_ORIGINAL = "MASTER_ORIGINAL"
    MASTER_PROPOSED = "MASTER_PROPOSED"


# --- Supplementary data ---


class Citation(_Model):
    title: str = ""
    url: str = ""


class LiveSearchResult(_Model):
    content: str
    citations: list[Citation] = Field(default_factory=list)

    @property
    def citation_count(self) -> int:
        return len(self.citations)


class SupplementaryContext(_Model):
    portfolio: Any | None = None
    live_search: LiveSearchResult | None = None

    @property
    def is_empty(self) -> bool:
        return self.portfolio is None and self.live_search is None


# --- Charts ---


class ChartType(str, Enum):
    BAR = "bar"
    MULTI_BAR = "multiBar"
    LINE = "line"
    PIE = "pie"
    AREA = "area"
    STACKED_AREA = "stackedArea"


class Trend(_Model):
    percentage: float
    direction: Literal["up", "down"]


class ChartConfig(_Model):
    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    title: str = ""
    description: str = ""
    trend: Trend | None = None
    footer: str | None = None
    total_label: str | None = Field(default=None, alias="totalLabel")
    x_axis_key: str | None = Field(default=None, alias="xAxisKey")


class SeriesConfig(_Model):
    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    label: str = ""
    stacked: bool | None = None
    color: str | None = None


class ChartPayload(_Model):
    """A chart tool call after repair; safe to hand to the rendering layer."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    chart_type: ChartType = Field(alias="chartType")
    config: ChartConfig = Field(default_factory=ChartConfig)
    data: list[dict[str, Any]]
    chart_config: dict[str, SeriesConfig] = Field(
        default_factory=dict, alias="chartConfig"
    )

    def to_wire(self) -> dict[str, Any]:
        # Records are passed through as-is; only unset config fields are dropped.
        wire = self.model_dump(
            mode="json", by_alias=True, exclude_none=True, exclude={"data"}
        )
        wire["data"] = [dict(record) for record in self.data]
        return wire


# --- Model responses ---


class TextBlock(_Model):
    type: Literal["text"] = "text"
    text: str


class ToolInvocation(_Model):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


ContentBlock = Annotated[Union[TextBlock, ToolInvocation], Field(discriminator="type")]


class RawModelResponse(_Model):
    blocks: list[ContentBlock] = Field(default_factory=list)
    stop_reason: str | None = None

    @property
    def tool_invocations(self) -> list[ToolInvocation]:
        return [block for block in self.blocks if isinstance(block, ToolInvocation)]

    @property
    def text_blocks(self) -> list[TextBlock]:
        return [block for block in self.blocks if isinstance(block, TextBlock)]


# --- HTTP surface ---


class FileData(_Model):
    base64: str | None = None
    media_type: str = Field(default="", alias="mediaType")
    is_text: bool = Field(default=False, alias="isText")
    file_name: str | None = Field(default=None, alias="fileName")


class ChartRequest(_Model):
    messages: list[ConversationTurn]
    model: str
    include_live_data: bool = Field(default=False, alias="includeLiveData")
    icf_mapping: ContextIdentifiers | None = Field(default=None, alias="icfMapping")
    file_data: FileData | None = Field(default=None, alias="fileData")


class ChartResponse(_Model):
    content: str = ""
    has_tool_use: bool = Field(default=False, alias="hasToolUse")
    tool_use: ToolInvocation | None = Field(default=None, alias="toolUse")
    chart_data: ChartPayload | None = Field(default=None, alias="chartData")
