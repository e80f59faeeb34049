"""Validation and repair of the model's chart tool calls.

The output of :func:`normalize` can be handed to the chart widget without any
further checks: ``data`` is a list of records, pie charts use ``segment`` and
``value`` keys, and every series carries a palette color.
"""

import copy
import json
import logging
from typing import Any, Mapping

from pydantic import ValidationError

from .errors import ChartValidationError
from .models import ChartPayload, ChartType

logger = logging.getLogger(__name__)

SEGMENT_FALLBACK_KEYS = ("segment", "category", "name")


def series_color(index: int) -> str:
    """Reference to palette slot ``index`` (1-based) of the rendering layer."""
    return f"hsl(var(--chart-{index}))"


def _sample(value: Any, limit: int = 100) -> str:
    if value is None:
        return "null or undefined"
    if isinstance(value, str):
        return value[:limit]
    try:
        return json.dumps(value, default=str)[:limit]
    except (TypeError, ValueError):
        return repr(value)[:limit]


def decode_data_field(data: Any) -> Any:
    """Compatibility shim for models that send ``data`` as a JSON string.

    Some responses encode the records once or even twice. Decoding is attempted
    at most twice; anything still a string afterwards is rejected. Remove this
    once the upstream model stops string-encoding tool arguments.
    """
    if not isinstance(data, str):
        return data
    try:
        decoded = json.loads(data)
        if isinstance(decoded, str):
            decoded = json.loads(decoded)
    except json.JSONDecodeError as e:
        logger.error("Error parsing data string. Data sample: %s", data[:200])
        raise ChartValidationError(
            "Invalid chart data structure: data is not valid JSON",
            field="data",
            sample=data[:200],
        ) from e
    if isinstance(decoded, str):
        raise ChartValidationError(
            "Invalid chart data structure: data is not valid JSON",
            field="data",
            sample=data[:200],
        )
    return decoded


def _reshape_pie(
    records: list[dict], config: dict, chart_config: Mapping[str, Any]
) -> list[dict]:
    value_key = next(iter(chart_config), None)
    segment_key = config.get("xAxisKey") or "segment"

    reshaped = []
    for record in records:
        segment = record.get(segment_key)
        for key in SEGMENT_FALLBACK_KEYS:
            if segment:
                break
            segment = record.get(key)

        value = record.get(value_key) if value_key is not None else None
        if value is None:
            value = record.get("value")

        reshaped.append({"segment": segment, "value": value})
    return reshaped


def normalize(tool_input: Mapping[str, Any]) -> ChartPayload:
    """Validate and repair a raw ``generate_graph_data`` payload.

    Raises ChartValidationError when the payload cannot be repaired.
    """
    if not isinstance(tool_input, Mapping):
        raise ChartValidationError(
            "Invalid chart data structure", field="input", sample=_sample(tool_input)
        )
    payload = copy.deepcopy(dict(tool_input))
    payload["data"] = decode_data_field(payload.get("data"))

    chart_type = payload.get("chartType")
    data = payload.get("data")
    if not chart_type:
        raise ChartValidationError(
            "Invalid chart data structure: missing chartType",
            field="chartType",
            sample=_sample(data),
        )
    if chart_type not in {t.value for t in ChartType}:
        raise ChartValidationError(
            f"Invalid chart data structure: unsupported chartType {chart_type!r}",
            field="chartType",
            sample=_sample(chart_type),
        )
    if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
        logger.error(
            "Invalid chart data structure: data type=%s sample=%s",
            type(data).__name__,
            _sample(data),
        )
        raise ChartValidationError(
            "Invalid chart data structure: data must be a list of records",
            field="data",
            sample=_sample(data),
        )

    config = payload.get("config")
    config = dict(config) if isinstance(config, Mapping) else {}
    chart_config = payload.get("chartConfig")
    chart_config = dict(chart_config) if isinstance(chart_config, Mapping) else {}

    if chart_type == ChartType.PIE.value:
        data = _reshape_pie(data, config, chart_config)
        config["xAxisKey"] = "segment"
    else:
        # Series must have values in the records; pie series were consumed above.
        present = {key for record in data for key in record}
        missing = [key for key in chart_config if key not in present]
        if missing:
            logger.warning("Dropping series %s with no values in chart data", missing)
            chart_config = {k: v for k, v in chart_config.items() if k in present}

    colored = {}
    for index, (key, series) in enumerate(chart_config.items(), start=1):
        series = dict(series) if isinstance(series, Mapping) else {"label": str(key)}
        colored[key] = {**series, "color": series_color(index)}

    payload.update(
        {"chartType": chart_type, "config": config, "data": data, "chartConfig": colored}
    )
    try:
        return ChartPayload.model_validate(payload)
    except ValidationError as e:
        raise ChartValidationError(
            f"Invalid chart data structure: {e.error_count()} schema error(s)",
            field=".".join(str(p) for p in e.errors()[0]["loc"]),
            sample=_sample(payload.get("config")),
        ) from e


def try_normalize(tool_input: Mapping[str, Any] | None) -> ChartPayload | None:
    """Normalize ``tool_input``, or return None when it cannot be repaired."""
    if tool_input is None:
        return None
    try:
        return normalize(tool_input)
    except Exception:
        logger.exception("Error processing tool response; continuing without chart")
        return None
