"""Tests for response aggregation — display values, distributions, averages, CSV export."""

import csv
import io
import uuid
from datetime import datetime, timezone

import pytest

from feedback_flow.schemas.forms import FieldDefinition, FieldOption, FormResponseSchema
from feedback_flow.services.aggregation import (
    averages,
    csv_export,
    csv_filename,
    display_value,
    rating_distribution,
    render_csv,
    response_display_row,
    results_summary,
    text_feedback_corpus,
)

FORM_ID = uuid.uuid4()
SUBMITTED_AT = datetime(2024, 3, 5, 14, 30, tzinfo=timezone.utc)

COLOR_OPTIONS = [
    FieldOption(label="Red", value="red"),
    FieldOption(label="Green", value="green"),
]


def _field(type_, field_id="f1", label="Question", **kwargs) -> FieldDefinition:
    return FieldDefinition(id=field_id, label=label, type=type_, **kwargs)


def _responses(field_id: str, values: list) -> list[FormResponseSchema]:
    return [_response({field_id: value}) for value in values]


def _response(answers: dict) -> FormResponseSchema:
    return FormResponseSchema(
        id=uuid.uuid4(),
        form_id=FORM_ID,
        user_id=None,
        answers=answers,
        timestamp=SUBMITTED_AT,
    )


# ---------------------------------------------------------------------------
# display_value
# ---------------------------------------------------------------------------


class TestDisplayValue:
    @pytest.mark.parametrize(
        "field_type",
        ["text", "textarea", "select", "radio", "checkbox", "rating", "date", "email", "number", "nps"],
    )
    @pytest.mark.parametrize("missing", [None, "", []])
    def test_missing_answer_is_na(self, field_type, missing):
        field = _field(field_type, options=COLOR_OPTIONS if field_type in ("select", "radio", "checkbox") else None)
        assert display_value(field, missing) == "N/A"

    def test_checkbox_labels_joined(self):
        field = _field("checkbox", options=COLOR_OPTIONS)
        assert display_value(field, ["red", "green"]) == "Red, Green"

    def test_checkbox_unknown_value_falls_back_to_raw(self):
        field = _field("checkbox", options=COLOR_OPTIONS)
        assert display_value(field, ["red", "violet"]) == "Red, violet"

    def test_scalar_option_label(self):
        field = _field("radio", options=COLOR_OPTIONS)
        assert display_value(field, "green") == "Green"
        assert display_value(field, "violet") == "violet"

    def test_rating_pluralization(self):
        field = _field("rating")
        assert display_value(field, 1) == "1 Star"
        assert display_value(field, 4) == "4 Stars"
        assert display_value(field, 0) == "0 Star"

    def test_nps(self):
        assert display_value(_field("nps"), 7) == "7 / 10"
        assert display_value(_field("nps"), 0) == "0 / 10"

    def test_date_formatted(self):
        assert display_value(_field("date"), "2024-03-05") == "3/5/2024"

    def test_unparseable_date_returned_raw(self):
        assert display_value(_field("date"), "next tuesday") == "next tuesday"

    def test_plain_values_coerced(self):
        assert display_value(_field("number"), 12.0) == "12"
        assert display_value(_field("number"), 2.5) == "2.5"
        assert display_value(_field("text"), "hello") == "hello"

    def test_response_display_row_skips_pagebreaks(self):
        fields = [_field("text", field_id="a"), _field("pagebreak", field_id="p"), _field("nps", field_id="n")]
        assert response_display_row(fields, {"a": "ok"}) == {"a": "ok", "n": "N/A"}


# ---------------------------------------------------------------------------
# rating_distribution
# ---------------------------------------------------------------------------


class TestRatingDistribution:
    def test_rating_buckets_ascending_with_zeros(self):
        field = _field("rating", field_id="r")
        buckets = rating_distribution([field], _responses("r", [1, 1, 3, 5]))
        assert [(b.bucket, b.count) for b in buckets] == [
            ("⭐ 1", 2),
            ("⭐ 2", 0),
            ("⭐ 3", 1),
            ("⭐ 4", 0),
            ("⭐ 5", 1),
        ]

    def test_custom_scale(self):
        field = _field("rating", field_id="r", min_rating=2, max_rating=4)
        buckets = rating_distribution([field], _responses("r", [1, 2, 4, 5]))
        assert [(b.value, b.count) for b in buckets] == [(2, 1), (3, 0), (4, 1)]

    def test_nps_fallback(self):
        fields = [_field("text", field_id="t"), _field("nps", field_id="n")]
        buckets = rating_distribution(fields, _responses("n", [0, 10, 10]))
        assert len(buckets) == 11
        assert buckets[0].bucket == "0"
        assert buckets[0].count == 1
        assert buckets[10].bucket == "10"
        assert buckets[10].count == 2

    def test_first_rating_preferred_over_nps(self):
        fields = [_field("nps", field_id="n"), _field("rating", field_id="r")]
        buckets = rating_distribution(fields, [_response({"n": 9, "r": 2})])
        assert [b.count for b in buckets] == [0, 1, 0, 0, 0]

    def test_rounding_and_out_of_range(self):
        field = _field("rating", field_id="r")
        buckets = rating_distribution([field], _responses("r", [2.5, 3.4, 0, 6, "4", None]))
        assert [b.count for b in buckets] == [0, 0, 2, 0, 0]

    def test_no_rating_field(self):
        assert rating_distribution([_field("text")], _responses("f1", ["hi"])) == []

    def test_no_responses(self):
        assert rating_distribution([_field("rating")], []) == []


# ---------------------------------------------------------------------------
# averages
# ---------------------------------------------------------------------------


class TestAverages:
    def test_nps_average(self):
        result = averages([_field("nps", field_id="n")], _responses("n", [3, 7]))
        assert result.avg_nps == 5
        assert result.avg_rating is None

    def test_missing_answers_count_as_zero(self):
        result = averages([_field("rating", field_id="r")], _responses("r", [4, None, "x", 2]))
        assert result.avg_rating == pytest.approx(1.5)
        assert result.rating_scale_max == 5

    def test_first_field_of_each_type(self):
        fields = [
            _field("rating", field_id="r1", max_rating=10),
            _field("rating", field_id="r2"),
            _field("nps", field_id="n"),
        ]
        result = averages(fields, [_response({"r1": 8, "r2": 1, "n": 6})])
        assert result.avg_rating == 8
        assert result.avg_nps == 6
        assert result.rating_scale_max == 10

    def test_no_responses_is_na(self):
        result = averages([_field("rating", field_id="r"), _field("nps", field_id="n")], [])
        assert result.avg_rating is None
        assert result.avg_nps is None

    def test_absent_field_types(self):
        result = averages([_field("text")], _responses("f1", ["hello"]))
        assert result.avg_rating is None
        assert result.avg_nps is None
        assert result.rating_scale_max is None


# ---------------------------------------------------------------------------
# csv_export
# ---------------------------------------------------------------------------


class TestCsvExport:
    FIELDS = [
        _field("text", field_id="name", label="Name"),
        _field("pagebreak", field_id="pb", label="Next Page"),
        _field("checkbox", field_id="colors", label="Colours", options=COLOR_OPTIONS),
        _field("rating", field_id="stars", label="Stars"),
    ]

    def test_zero_responses(self):
        export = csv_export(self.FIELDS, [])
        assert [(c.label, c.key) for c in export.headers] == [
            ("Response ID", "id"),
            ("Name", "name"),
            ("Colours", "colors"),
            ("Stars", "stars"),
            ("Submitted At", "timestamp"),
        ]
        assert export.rows == []

    def test_rows_use_display_values(self):
        response = _response({"name": "Sita", "colors": ["green"], "stars": 5})
        export = csv_export(self.FIELDS, [response])
        assert export.rows == [
            {
                "id": str(response.id),
                "timestamp": SUBMITTED_AT.isoformat(),
                "name": "Sita",
                "colors": "Green",
                "stars": "5 Stars",
            }
        ]

    def test_render_csv(self):
        response = _response({"name": "Hari, Jr.", "stars": 1})
        text = render_csv(csv_export(self.FIELDS, [response]))
        rows = list(csv.reader(io.StringIO(text)))
        assert rows[0] == ["Response ID", "Name", "Colours", "Stars", "Submitted At"]
        assert rows[1] == [str(response.id), "Hari, Jr.", "N/A", "1 Star", SUBMITTED_AT.isoformat()]

    def test_render_csv_header_only(self):
        rows = list(csv.reader(io.StringIO(render_csv(csv_export(self.FIELDS, [])))))
        assert len(rows) == 1

    def test_filename(self):
        assert csv_filename("Customer Feedback 2024!") == "customer_feedback_2024_-responses.csv"
        assert csv_filename("") == "form-responses.csv"


# ---------------------------------------------------------------------------
# text_feedback_corpus
# ---------------------------------------------------------------------------


class TestTextFeedbackCorpus:
    def test_collects_trimmed_text_answers(self):
        fields = [
            _field("text", field_id="t"),
            _field("textarea", field_id="ta"),
            _field("email", field_id="e"),
            _field("radio", field_id="r", options=COLOR_OPTIONS),
        ]
        responses = [
            _response({"t": "  Great staff ", "ta": "", "e": "a@b.co", "r": "red"}),
            _response({"t": "   ", "ta": "Parking was hard"}),
            _response({"t": 5}),
        ]
        assert text_feedback_corpus(fields, responses) == ["Great staff", "Parking was hard"]

    def test_no_text_fields(self):
        assert text_feedback_corpus([_field("nps")], _responses("f1", [9])) == []

    def test_no_responses(self):
        assert text_feedback_corpus([_field("text")], []) == []


# ---------------------------------------------------------------------------
# results_summary
# ---------------------------------------------------------------------------


class TestResultsSummary:
    def test_summary(self):
        fields = [_field("rating", field_id="r", label="Overall")]
        summary = results_summary(fields, _responses("r", [5, 3]))
        assert summary.total_responses == 2
        assert summary.averages.avg_rating == 4
        assert summary.distribution_field.id == "r"
        assert summary.distribution_field.label == "Overall"
        assert len(summary.rating_distribution) == 5

    def test_empty(self):
        summary = results_summary([_field("text")], [])
        assert summary.total_responses == 0
        assert summary.distribution_field is None
        assert summary.rating_distribution == []
