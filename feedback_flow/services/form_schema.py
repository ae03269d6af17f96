"""Form schema engine — authoring checks, per-form answer validators, draft helpers.

A form is an ordered list of ``FieldDefinition`` values. From that list the
engine derives:
- a ``Validator`` with one rule per collected field (pagebreaks are skipped)
- a default answer map used to initialise a respondent's draft
- normalised option lists with unique values

Everything here is pure: no I/O and no state kept between calls.
"""

import logging
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import EmailStr, TypeAdapter, ValidationError

from feedback_flow.schemas.forms import (
    CHOICE_TYPES,
    FieldDefinition,
    FieldOption,
    FieldType,
    OptionDraft,
    random_token,
)

logger = logging.getLogger(__name__)

TITLE_MIN_LENGTH = 3
PAGEBREAK_DEFAULT_LABEL = "Next Page"
DEFAULT_RATING_MIN = 1
DEFAULT_RATING_MAX = 5
DEFAULT_NUMBER_MIN = 1
NPS_MIN = 0
NPS_MAX = 10

_EMAIL_ADAPTER = TypeAdapter(EmailStr)
_WHITESPACE = re.compile(r"\s+")
_NON_SLUG_CHARS = re.compile(r"[^a-z0-9-]")


class FormSchemaError(Exception):
    """Base exception for form schema engine errors."""


class AuthoringValidationError(FormSchemaError):
    """Raised when a form definition fails authoring constraints.

    ``errors`` maps a location (``title``, ``fields``, ``fields.<i>.label``...)
    to a message.
    """

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = errors
        super().__init__("Invalid form definition: " + "; ".join(f"{k}: {v}" for k, v in errors.items()))


class SubmissionValidationError(FormSchemaError):
    """Raised when an answer map fails a form's validator.

    ``errors`` maps field id to a message naming the field's label.
    """

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = errors
        super().__init__("Invalid submission: " + "; ".join(errors.values()))


class _Violation(Exception):
    pass


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _coerce_number(value: Any, label: str) -> int | float:
    """Accept ints, finite floats and numeric strings; booleans are not numbers."""
    if isinstance(value, bool):
        raise _Violation(f"{label} must be a number.")
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise _Violation(f"{label} must be a number.") from None
    else:
        raise _Violation(f"{label} must be a number.")

    if isinstance(number, float):
        if not math.isfinite(number):
            raise _Violation(f"{label} must be a number.")
        if number.is_integer():
            return int(number)
    return number


# ---------------------------------------------------------------------------
# Field rules (one variant per collected field type)
# ---------------------------------------------------------------------------


class FieldRule:
    """Validation rule for one collected field."""

    def __init__(self, field: FieldDefinition) -> None:
        self.field_id = field.id
        self.label = field.label
        self.required = field.required

    def check(self, value: Any) -> Any:
        """Return the cleaned value or raise ``_Violation``."""
        raise NotImplementedError

    def _required_message(self) -> str:
        return f"{self.label} is required."


class TextRule(FieldRule):
    """text, textarea, select, radio: a string, non-empty when required.

    For select/radio the value must be one of the declared option values.
    """

    def __init__(self, field: FieldDefinition) -> None:
        super().__init__(field)
        self.allowed = {opt.value for opt in field.options or []}

    def check(self, value: Any) -> Any:
        if _is_blank(value):
            if self.required:
                raise _Violation(self._required_message())
            return value
        if not isinstance(value, str):
            raise _Violation(f"{self.label} must be text.")
        if self.allowed and value not in self.allowed:
            raise _Violation(f"{self.label} must be one of the listed options.")
        return value


class EmailRule(FieldRule):
    def check(self, value: Any) -> Any:
        if _is_blank(value):
            if self.required:
                raise _Violation(self._required_message())
            return value
        if not isinstance(value, str):
            raise _Violation(f"{self.label} must be a valid email.")
        try:
            return _EMAIL_ADAPTER.validate_python(value.strip())
        except ValidationError:
            raise _Violation(f"{self.label} must be a valid email.") from None


class NumberRule(FieldRule):
    """number and rating: numeric, bounded below when required."""

    def __init__(self, field: FieldDefinition) -> None:
        super().__init__(field)
        self.is_rating = field.type == FieldType.RATING
        if self.is_rating:
            self.minimum = field.min_rating if field.min_rating is not None else DEFAULT_RATING_MIN
        else:
            self.minimum = DEFAULT_NUMBER_MIN

    def check(self, value: Any) -> Any:
        if _is_blank(value):
            if self.required:
                raise _Violation(self._required_message())
            return None
        number = _coerce_number(value, self.label)
        if self.required and number < self.minimum:
            # An unselected rating is stored as 0
            if self.is_rating:
                raise _Violation(self._required_message())
            raise _Violation(f"{self.label} must be at least {self.minimum}.")
        return number


class NpsRule(FieldRule):
    def check(self, value: Any) -> Any:
        if _is_blank(value):
            if self.required:
                raise _Violation(self._required_message())
            return None
        number = _coerce_number(value, self.label)
        if not NPS_MIN <= number <= NPS_MAX:
            raise _Violation(f"{self.label} must be between {NPS_MIN} and {NPS_MAX}.")
        return number


class CheckboxRule(FieldRule):
    def __init__(self, field: FieldDefinition) -> None:
        super().__init__(field)
        self.allowed = {opt.value for opt in field.options or []}

    def check(self, value: Any) -> Any:
        if value is None:
            value = []
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise _Violation(f"{self.label} must be a list of options.")
        if self.required and not value:
            raise _Violation(f"Please select at least one option for {self.label}.")
        if self.allowed and any(item not in self.allowed for item in value):
            raise _Violation(f"{self.label} contains an option that is not listed.")
        return value


class DateRule(FieldRule):
    def check(self, value: Any) -> Any:
        if _is_blank(value):
            if self.required:
                raise _Violation(self._required_message())
            return value
        if not isinstance(value, str):
            raise _Violation(f"{self.label} must be a date.")
        return value


_RULES: dict[FieldType, type[FieldRule]] = {
    FieldType.TEXT: TextRule,
    FieldType.TEXTAREA: TextRule,
    FieldType.SELECT: TextRule,
    FieldType.RADIO: TextRule,
    FieldType.EMAIL: EmailRule,
    FieldType.NUMBER: NumberRule,
    FieldType.RATING: NumberRule,
    FieldType.NPS: NpsRule,
    FieldType.CHECKBOX: CheckboxRule,
    FieldType.DATE: DateRule,
}


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


@dataclass
class ValidationResult:
    valid: bool
    errors: dict[str, str]
    values: dict[str, Any]


class Validator:
    """Checks answer maps against the rules derived from a field list."""

    def __init__(self, rules: Iterable[FieldRule]) -> None:
        self._rules = {rule.field_id: rule for rule in rules}

    @property
    def field_ids(self) -> list[str]:
        return list(self._rules)

    def validate(self, answers: Mapping[str, Any]) -> ValidationResult:
        """Validate every collected field.

        Keys that do not belong to a collected field are dropped from
        ``values``; numeric answers are coerced.
        """
        errors: dict[str, str] = {}
        values: dict[str, Any] = {}

        for field_id, rule in self._rules.items():
            try:
                cleaned = rule.check(answers.get(field_id))
            except _Violation as exc:
                errors[field_id] = str(exc)
                continue
            if field_id in answers:
                values[field_id] = cleaned

        dropped = set(answers) - set(self._rules)
        if dropped:
            logger.debug("Dropping %d answer key(s) with no matching field: %s", len(dropped), sorted(dropped))

        return ValidationResult(valid=not errors, errors=errors, values=values)

    def check(self, answers: Mapping[str, Any]) -> dict[str, Any]:
        """Return cleaned answers, raising SubmissionValidationError on failure."""
        result = self.validate(answers)
        if not result.valid:
            raise SubmissionValidationError(result.errors)
        return result.values


def build_validator(fields: Iterable[FieldDefinition]) -> Validator:
    return Validator(_RULES[field.type](field) for field in fields if field.type != FieldType.PAGEBREAK)


def default_answers(fields: Iterable[FieldDefinition]) -> dict[str, Any]:
    """Initial answer map for a respondent's draft."""
    defaults: dict[str, Any] = {}
    for field in fields:
        if field.type == FieldType.PAGEBREAK:
            continue
        if field.type == FieldType.CHECKBOX:
            defaults[field.id] = []
        elif field.type == FieldType.RATING:
            defaults[field.id] = 0
        elif field.type == FieldType.NPS:
            defaults[field.id] = None
        else:
            defaults[field.id] = ""
    return defaults


# ---------------------------------------------------------------------------
# Authoring helpers
# ---------------------------------------------------------------------------


def _slugify(label: str) -> str:
    return _NON_SLUG_CHARS.sub("", _WHITESPACE.sub("-", label.lower()))


def ensure_option_values(options: Iterable[OptionDraft | FieldOption | Mapping[str, Any]] | None) -> list[FieldOption]:
    """Give every option a value that is unique within the list.

    A provided value is kept; otherwise it is derived from the label. Repeats
    of a base value get ``_1``, ``_2``... suffixes.
    """
    if not options:
        return []

    counts: dict[str, int] = {}
    emitted: set[str] = set()
    result: list[FieldOption] = []

    for raw in options:
        option = OptionDraft.model_validate(raw if isinstance(raw, Mapping) else raw.model_dump())
        value = option.value or _slugify(option.label)
        if not value.strip():
            value = f"option-{random_token(5)}"

        base = value
        if base in counts:
            counts[base] += 1
            value = f"{base}_{counts[base]}"
        else:
            counts[base] = 0
        while value in emitted:
            counts[base] += 1
            value = f"{base}_{counts[base]}"

        emitted.add(value)
        result.append(FieldOption(label=option.label, value=value))

    return result


def change_field_type(field: FieldDefinition, new_type: FieldType | str) -> FieldDefinition:
    """Return a copy of ``field`` switched to ``new_type``.

    Choice types get one starter option when they have none; other types lose
    their options. Pagebreaks are never required and get a default label.
    """
    new_type = FieldType(new_type)
    update: dict[str, Any] = {"type": new_type}

    if new_type in CHOICE_TYPES:
        if not field.options:
            update["options"] = [FieldOption(label="Option 1", value="option_1")]
    else:
        update["options"] = None

    if new_type == FieldType.PAGEBREAK:
        update["required"] = False
        if not field.label.strip():
            update["label"] = PAGEBREAK_DEFAULT_LABEL

    return field.model_copy(update=update)


def validate_form_definition(title: str | None, fields: list[FieldDefinition]) -> list[FieldDefinition]:
    """Check a form definition before it is saved and return normalised fields.

    Raises:
        AuthoringValidationError: with every problem found, keyed by location.
    """
    errors: dict[str, str] = {}

    if len((title or "").strip()) < TITLE_MIN_LENGTH:
        errors["title"] = f"Title must be at least {TITLE_MIN_LENGTH} characters"
    if not fields:
        errors["fields"] = "Add at least one field"

    seen_ids: set[str] = set()
    normalized: list[FieldDefinition] = []

    for index, field in enumerate(fields):
        prefix = f"fields.{index}"
        if field.id in seen_ids:
            errors[f"{prefix}.id"] = "Field ids must be unique"
        seen_ids.add(field.id)

        if field.type == FieldType.PAGEBREAK:
            normalized.append(
                field.model_copy(
                    update={
                        "label": field.label.strip() or PAGEBREAK_DEFAULT_LABEL,
                        "required": False,
                        "options": None,
                    }
                )
            )
            continue

        if not field.label.strip():
            errors[f"{prefix}.label"] = "Label is required"

        if field.type in CHOICE_TYPES:
            if not field.options:
                errors[f"{prefix}.options"] = "Add at least one option"
                continue
            if any(not opt.label.strip() for opt in field.options):
                errors[f"{prefix}.options"] = "Every option needs a label"
                continue
            normalized.append(field.model_copy(update={"options": ensure_option_values(field.options)}))
            continue

        if field.type == FieldType.RATING:
            low = field.min_rating if field.min_rating is not None else DEFAULT_RATING_MIN
            high = field.max_rating if field.max_rating is not None else DEFAULT_RATING_MAX
            if low > high:
                errors[f"{prefix}.max_rating"] = "Maximum rating must not be below the minimum rating"

        normalized.append(field.model_copy(update={"options": None}))

    if errors:
        raise AuthoringValidationError(errors)

    return normalized
