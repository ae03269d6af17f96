"""Response aggregation — display values, rating/NPS charts, averages, CSV export.

All functions take a form's field list plus its responses and return plain,
display-ready structures. Zero responses, missing rating/NPS fields or forms
without text questions produce empty or neutral results, never errors.

Responses are any objects exposing ``id``, ``answers`` and ``timestamp``
(ORM rows or ``FormResponseSchema`` instances).
"""

import csv
import io
import math
import re
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from feedback_flow.schemas.forms import TEXT_TYPES, FieldDefinition, FieldType
from feedback_flow.schemas.results import (
    Averages,
    CsvColumn,
    CsvExport,
    DistributionField,
    RatingBucket,
    ResultsSummary,
)
from feedback_flow.services.form_schema import (
    DEFAULT_RATING_MAX,
    DEFAULT_RATING_MIN,
    NPS_MAX,
    NPS_MIN,
)

NOT_AVAILABLE = "N/A"
RATING_BUCKET_PREFIX = "⭐ "

_FILENAME_UNSAFE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not (isinstance(value, float) and math.isnan(value))


def _format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _format_date(raw: str) -> str | None:
    try:
        parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return f"{parsed.month}/{parsed.day}/{parsed.year}"


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if _is_number(value):
        return _format_number(value)
    return str(value)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _answers(response: Any) -> dict[str, Any]:
    return response.answers or {}


def _first_field(fields: Sequence[FieldDefinition], field_type: FieldType) -> FieldDefinition | None:
    return next((field for field in fields if field.type == field_type), None)


def _collected(fields: Sequence[FieldDefinition]) -> list[FieldDefinition]:
    return [field for field in fields if field.type != FieldType.PAGEBREAK]


# ---------------------------------------------------------------------------
# Display values
# ---------------------------------------------------------------------------


def display_value(field: FieldDefinition, answer: Any) -> str:
    """Resolve a stored answer to the string shown in tables and exports."""
    if answer is None or answer == "" or answer == []:
        return NOT_AVAILABLE

    labels = {opt.value: opt.label for opt in field.options or []}

    if isinstance(answer, list):
        return ", ".join(labels.get(_stringify(item), _stringify(item)) for item in answer)

    if labels and (isinstance(answer, str) or _is_number(answer)):
        key = _stringify(answer)
        return labels.get(key, key)

    if field.type == FieldType.RATING and _is_number(answer):
        suffix = "s" if answer > 1 else ""
        return f"{_format_number(answer)} Star{suffix}"

    if field.type == FieldType.NPS and _is_number(answer):
        return f"{_format_number(answer)} / {NPS_MAX}"

    if field.type == FieldType.DATE and isinstance(answer, str):
        formatted = _format_date(answer)
        if formatted is not None:
            return formatted

    return _stringify(answer)


def response_display_row(fields: Sequence[FieldDefinition], answers: dict[str, Any]) -> dict[str, str]:
    """Display values for every collected field of one response, keyed by field id."""
    return {field.id: display_value(field, answers.get(field.id)) for field in _collected(fields)}


# ---------------------------------------------------------------------------
# Rating / NPS charts
# ---------------------------------------------------------------------------


def distribution_field(fields: Sequence[FieldDefinition]) -> FieldDefinition | None:
    """The field charted by ``rating_distribution``: first rating, else first NPS."""
    return _first_field(fields, FieldType.RATING) or _first_field(fields, FieldType.NPS)


def scale_bounds(field: FieldDefinition) -> tuple[int, int]:
    if field.type == FieldType.NPS:
        return NPS_MIN, NPS_MAX
    return field.min_rating or DEFAULT_RATING_MIN, field.max_rating or DEFAULT_RATING_MAX


def rating_distribution(fields: Sequence[FieldDefinition], responses: Sequence[Any]) -> list[RatingBucket]:
    """Count answers per scale point, lowest first, including empty points."""
    field = distribution_field(fields)
    if field is None or not responses:
        return []

    low, high = scale_bounds(field)
    counts = {point: 0 for point in range(low, high + 1)}

    for response in responses:
        answer = _answers(response).get(field.id)
        if not _is_number(answer) or not math.isfinite(answer):
            continue
        point = _round_half_up(answer)
        if point in counts:
            counts[point] += 1

    prefix = "" if field.type == FieldType.NPS else RATING_BUCKET_PREFIX
    return [RatingBucket(bucket=f"{prefix}{point}", value=point, count=count) for point, count in counts.items()]


def _mean_of_field(field: FieldDefinition | None, responses: Sequence[Any]) -> float | None:
    if field is None or not responses:
        return None
    total = 0.0
    for response in responses:
        answer = _answers(response).get(field.id)
        total += answer if _is_number(answer) else 0
    return total / len(responses)


def averages(fields: Sequence[FieldDefinition], responses: Sequence[Any]) -> Averages:
    """Mean of the first rating and first NPS field over all responses.

    Missing or non-numeric answers count as 0 but still count as a response.
    """
    rating_field = _first_field(fields, FieldType.RATING)
    nps_field = _first_field(fields, FieldType.NPS)

    return Averages(
        avg_rating=_mean_of_field(rating_field, responses),
        avg_nps=_mean_of_field(nps_field, responses),
        rating_scale_max=(rating_field.max_rating or DEFAULT_RATING_MAX) if rating_field else None,
    )


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------


def _timestamp_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def csv_export(fields: Sequence[FieldDefinition], responses: Sequence[Any]) -> CsvExport:
    collected = _collected(fields)

    headers = [CsvColumn(label="Response ID", key="id")]
    headers.extend(CsvColumn(label=field.label, key=field.id) for field in collected)
    headers.append(CsvColumn(label="Submitted At", key="timestamp"))

    rows: list[dict[str, str]] = []
    for response in responses:
        row = {"id": str(response.id), "timestamp": _timestamp_text(response.timestamp)}
        row.update(response_display_row(collected, _answers(response)))
        rows.append(row)

    return CsvExport(headers=headers, rows=rows)


def render_csv(export: CsvExport) -> str:
    """Encode an export as CSV text with a header row of column labels."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([column.label for column in export.headers])
    for row in export.rows:
        writer.writerow([row.get(column.key, "") for column in export.headers])
    return output.getvalue()


def csv_filename(title: str) -> str:
    stem = _FILENAME_UNSAFE.sub("_", title or "").lower() or "form"
    return f"{stem}-responses.csv"


# ---------------------------------------------------------------------------
# Text feedback
# ---------------------------------------------------------------------------


def text_fields(fields: Sequence[FieldDefinition]) -> list[FieldDefinition]:
    return [field for field in fields if field.type in TEXT_TYPES]


def text_feedback_corpus(fields: Sequence[FieldDefinition], responses: Sequence[Any]) -> list[str]:
    """Trimmed, non-empty answers to text/textarea questions across all responses.

    An empty list means there is nothing to summarize.
    """
    field_ids = [field.id for field in text_fields(fields)]
    corpus: list[str] = []
    for response in responses:
        answers = _answers(response)
        for field_id in field_ids:
            answer = answers.get(field_id)
            if isinstance(answer, str) and answer.strip():
                corpus.append(answer.strip())
    return corpus


# ---------------------------------------------------------------------------
# Results overview
# ---------------------------------------------------------------------------


def results_summary(fields: Sequence[FieldDefinition], responses: Sequence[Any]) -> ResultsSummary:
    charted = distribution_field(fields)
    return ResultsSummary(
        total_responses=len(responses),
        averages=averages(fields, responses),
        distribution_field=(
            DistributionField(id=charted.id, label=charted.label, type=charted.type) if charted else None
        ),
        rating_distribution=rating_distribution(fields, responses),
    )
