"""Form/Survey API — authoring, response collection, results, CSV export, AI helpers."""

import asyncio
import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from feedback_flow.core.auth import get_current_user, get_optional_user
from feedback_flow.core.config import settings
from feedback_flow.core.database import get_db
from feedback_flow.models.form import Form
from feedback_flow.models.form_response import FormResponse
from feedback_flow.models.user import User
from feedback_flow.schemas.forms import (
    CHOICE_TYPES,
    FieldDefinition,
    FieldType,
    FormCreate,
    FormDetailOut,
    FormListResponse,
    FormOut,
    FormResponseListResponse,
    FormResponseRow,
    FormResponseSchema,
    FormSubmission,
    FormSummaryOut,
    FormUpdate,
    SuggestQuestionsRequest,
    SuggestQuestionsResponse,
)
from feedback_flow.schemas.results import FeedbackSummaryResponse, ResultsSummary
from feedback_flow.services.aggregation import (
    csv_export,
    csv_filename,
    render_csv,
    response_display_row,
    results_summary,
    text_feedback_corpus,
    text_fields,
)
from feedback_flow.services.ai import (
    AIFeaturesDisabledError,
    AIServiceError,
    generate_survey_questions,
    summarize_feedback,
)
from feedback_flow.services.form_schema import (
    AuthoringValidationError,
    SubmissionValidationError,
    build_validator,
    change_field_type,
    default_answers,
    ensure_option_values,
    validate_form_definition,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_form_or_404(form_id: uuid.UUID, db: Session) -> Form:
    form = db.get(Form, form_id)
    if form is None:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


def _get_owned_form(form_id: uuid.UUID, db: Session, user: User) -> Form:
    form = _get_form_or_404(form_id, db)
    if form.created_by != user.id:
        raise HTTPException(status_code=403, detail="Only the form's author can do this")
    return form


def _form_fields(form: Form) -> list[FieldDefinition]:
    return [FieldDefinition.model_validate(raw) for raw in form.fields or []]


def _checked_fields(payload: FormCreate) -> list[dict]:
    """Run authoring validation and return fields ready for storage."""
    try:
        fields = validate_form_definition(payload.title, payload.fields)
    except AuthoringValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": "Form definition is invalid", "errors": exc.errors},
        )
    return [field.model_dump(mode="json") for field in fields]


def _share_url(form_id: uuid.UUID) -> str:
    return f"{settings.PUBLIC_APP_URL.rstrip('/')}/forms/{form_id}/respond"


def _response_count(db: Session, form_id: uuid.UUID) -> int:
    return db.execute(
        select(func.count()).select_from(FormResponse).where(FormResponse.form_id == form_id)
    ).scalar_one()


def _all_responses(db: Session, form_id: uuid.UUID) -> list[FormResponse]:
    return list(
        db.execute(
            select(FormResponse)
            .where(FormResponse.form_id == form_id)
            .order_by(FormResponse.timestamp.desc())
        )
        .scalars()
        .all()
    )


def _summary_out(form: Form, response_count: int) -> FormSummaryOut:
    return FormSummaryOut(
        **FormOut.model_validate(form).model_dump(),
        response_count=response_count,
        share_url=_share_url(form.id),
    )


# ---------------------------------------------------------------------------
# Form authoring
# ---------------------------------------------------------------------------


@router.post("/", response_model=FormSummaryOut, status_code=201)
def create_form(
    payload: FormCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    fields = _checked_fields(payload)

    form = Form(
        title=payload.title.strip(),
        description=payload.description,
        fields=fields,
        is_anonymous=payload.is_anonymous,
        ai_mode=payload.ai_mode,
        created_by=current_user.id,
    )
    db.add(form)
    db.commit()
    db.refresh(form)

    logger.info("Form %s created by %s with %d fields", form.id, current_user.id, len(fields))
    return _summary_out(form, 0)


@router.get("/", response_model=FormListResponse)
def list_forms(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    total = db.execute(
        select(func.count()).select_from(Form).where(Form.created_by == current_user.id)
    ).scalar_one()

    offset = (page - 1) * page_size
    forms = (
        db.execute(
            select(Form)
            .where(Form.created_by == current_user.id)
            .order_by(Form.created_at.desc())
            .offset(offset)
            .limit(page_size)
        )
        .scalars()
        .all()
    )

    counts: dict[uuid.UUID, int] = {}
    if forms:
        count_rows = db.execute(
            select(FormResponse.form_id, func.count())
            .where(FormResponse.form_id.in_([form.id for form in forms]))
            .group_by(FormResponse.form_id)
        ).all()
        counts = {row[0]: row[1] for row in count_rows}

    return FormListResponse(
        items=[_summary_out(form, counts.get(form.id, 0)) for form in forms],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("/suggest-questions", response_model=SuggestQuestionsResponse)
async def suggest_questions(
    payload: SuggestQuestionsRequest,
    current_user: User = Depends(get_current_user),
):
    """Ask the AI for questions on a topic and return them as ready-to-append fields."""
    try:
        suggestions = await generate_survey_questions(payload.topic)
    except AIFeaturesDisabledError:
        raise HTTPException(status_code=503, detail="AI features are disabled")
    except AIServiceError as exc:
        raise HTTPException(status_code=502, detail=f"Could not generate questions: {exc}")

    fields: list[FieldDefinition] = []
    for suggestion in suggestions:
        field = change_field_type(FieldDefinition(label=suggestion.label, type=FieldType.TEXT), suggestion.type)
        if suggestion.type in CHOICE_TYPES and suggestion.options:
            field = field.model_copy(update={"options": ensure_option_values(suggestion.options)})
        fields.append(field)

    logger.info("Suggested %d questions for user %s", len(fields), current_user.id)
    return SuggestQuestionsResponse(fields=fields)


@router.get("/{form_id}", response_model=FormDetailOut)
def get_form(form_id: uuid.UUID, db: Session = Depends(get_db)):
    """Public: respondents load the form definition and their initial answers here."""
    form = _get_form_or_404(form_id, db)
    summary = _summary_out(form, _response_count(db, form.id))
    return FormDetailOut(
        **summary.model_dump(),
        default_answers=default_answers(_form_fields(form)),
    )


@router.put("/{form_id}", response_model=FormSummaryOut)
def update_form(
    form_id: uuid.UUID,
    payload: FormUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    form = _get_owned_form(form_id, db, current_user)
    fields = _checked_fields(payload)

    form.title = payload.title.strip()
    form.description = payload.description
    form.fields = fields
    form.is_anonymous = payload.is_anonymous
    form.ai_mode = payload.ai_mode
    form.updated_at = datetime.now(timezone.utc)

    db.commit()
    db.refresh(form)
    return _summary_out(form, _response_count(db, form.id))


@router.delete("/{form_id}", status_code=204)
def delete_form(
    form_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    form = _get_owned_form(form_id, db, current_user)
    db.delete(form)
    db.commit()
    logger.info("Form %s deleted by %s", form_id, current_user.id)


# ---------------------------------------------------------------------------
# Form responses
# ---------------------------------------------------------------------------


@router.post("/{form_id}/responses", response_model=FormResponseSchema, status_code=201)
def submit_form_response(
    form_id: uuid.UUID,
    payload: FormSubmission,
    db: Session = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
):
    form = _get_form_or_404(form_id, db)

    validator = build_validator(_form_fields(form))
    try:
        answers = validator.check(payload.answers)
    except SubmissionValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": "Submission is invalid", "errors": exc.errors},
        )

    user_id = current_user.id if current_user is not None and not form.is_anonymous else None

    form_response = FormResponse(
        form_id=form.id,
        user_id=user_id,
        answers=answers,
        timestamp=datetime.now(timezone.utc),
    )
    db.add(form_response)
    db.commit()
    db.refresh(form_response)
    return form_response


@router.get("/{form_id}/responses", response_model=FormResponseListResponse)
def list_form_responses(
    form_id: uuid.UUID,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    form = _get_owned_form(form_id, db, current_user)
    fields = _form_fields(form)

    total = _response_count(db, form.id)
    offset = (page - 1) * page_size
    responses = (
        db.execute(
            select(FormResponse)
            .where(FormResponse.form_id == form.id)
            .order_by(FormResponse.timestamp.desc())
            .offset(offset)
            .limit(page_size)
        )
        .scalars()
        .all()
    )

    items = [
        FormResponseRow(
            **FormResponseSchema.model_validate(resp).model_dump(),
            display=response_display_row(fields, resp.answers or {}),
        )
        for resp in responses
    ]
    return FormResponseListResponse(items=items, total=total, page=page, page_size=page_size)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@router.get("/{form_id}/results", response_model=ResultsSummary)
def get_form_results(
    form_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    form = _get_owned_form(form_id, db, current_user)
    return results_summary(_form_fields(form), _all_responses(db, form.id))


@router.get("/{form_id}/results/csv")
def download_form_results(
    form_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Export all responses as CSV, one column per collected field."""
    form = _get_owned_form(form_id, db, current_user)
    export = csv_export(_form_fields(form), _all_responses(db, form.id))

    filename = csv_filename(form.title)
    return StreamingResponse(
        iter([render_csv(export)]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _feedback_for_summary(
    form_id: uuid.UUID, db: Session, user: User
) -> tuple[uuid.UUID, list[str], FeedbackSummaryResponse | None]:
    """Collect the text corpus, or the early reply when there is nothing to summarize."""
    form = _get_owned_form(form_id, db, user)
    fields = _form_fields(form)
    responses = _all_responses(db, form.id)

    if not responses:
        return form.id, [], FeedbackSummaryResponse(summary=None, message="No responses available to summarize.")
    if not text_fields(fields):
        return form.id, [], FeedbackSummaryResponse(
            summary=None,
            message="No text-based questions found in this form to summarize.",
        )

    corpus = text_feedback_corpus(fields, responses)
    if not corpus:
        return form.id, [], FeedbackSummaryResponse(
            summary=None,
            message="No textual feedback provided by respondents.",
        )
    return form.id, corpus, None


@router.post("/{form_id}/results/summary", response_model=FeedbackSummaryResponse)
async def summarize_form_feedback(
    form_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    # Session queries are synchronous; keep them off the event loop
    form_id, corpus, early_reply = await asyncio.to_thread(_feedback_for_summary, form_id, db, current_user)
    if early_reply is not None:
        return early_reply

    try:
        summary = await summarize_feedback(corpus)
    except AIFeaturesDisabledError:
        raise HTTPException(status_code=503, detail="AI features are disabled")
    except AIServiceError as exc:
        logger.error("Feedback summary failed for form %s: %s", form_id, exc)
        raise HTTPException(status_code=502, detail="Could not generate summary")

    return FeedbackSummaryResponse(summary=summary, feedback_count=len(corpus))
