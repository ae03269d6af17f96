"""Pydantic schemas for form results endpoints."""

from pydantic import BaseModel

from feedback_flow.schemas.forms import FieldType

# ---------------------------------------------------------------------------
# Supporting models
# ---------------------------------------------------------------------------


class RatingBucket(BaseModel):
    """Response count for one point on a rating/NPS scale."""

    bucket: str  # "⭐ 3" for ratings, "7" for NPS
    value: int
    count: int


class Averages(BaseModel):
    avg_rating: float | None = None
    avg_nps: float | None = None
    rating_scale_max: int | None = None  # for "x / max" display


class DistributionField(BaseModel):
    id: str
    label: str
    type: FieldType


class CsvColumn(BaseModel):
    label: str
    key: str


class CsvExport(BaseModel):
    headers: list[CsvColumn]
    rows: list[dict[str, str]]


# ---------------------------------------------------------------------------
# GET /forms/{id}/results
# ---------------------------------------------------------------------------


class ResultsSummary(BaseModel):
    total_responses: int
    averages: Averages
    distribution_field: DistributionField | None = None
    rating_distribution: list[RatingBucket]


# ---------------------------------------------------------------------------
# POST /forms/{id}/results/summary
# ---------------------------------------------------------------------------


class FeedbackSummaryResponse(BaseModel):
    summary: str | None
    message: str | None = None
    feedback_count: int = 0
