import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from feedback_flow.core.database import Base


class FormResponse(Base):
    """One respondent's answers to a form.

    The answers field is a JSONB dict keyed by field id:
        {
            "field_a1": "Free text here",      # text / textarea / email / date
            "field_b2": "option-a",            # select / radio (option value)
            "field_c3": ["red", "blue"],       # checkbox (option values)
            "field_d4": 4,                     # rating / number
            "field_e5": 9                      # nps (0-10)
        }

    Rows are immutable once written.
    """

    __tablename__ = "form_responses"
    __table_args__ = (
        Index("ix_form_responses_form_id", "form_id"),
        Index("ix_form_responses_form_timestamp", "form_id", "timestamp"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    form_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("forms.id"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id")
    )
    answers: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    timestamp: Mapped[datetime] = mapped_column(server_default=func.now())

    form: Mapped["Form"] = relationship(back_populates="responses")

    def __repr__(self) -> str:
        respondent = self.user_id or "anonymous"
        return f"<FormResponse form={self.form_id} ({respondent})>"
