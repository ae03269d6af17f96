import uuid
from datetime import datetime

from sqlalchemy import Boolean, Enum, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from feedback_flow.core.database import Base


class Form(Base):
    """Survey/form definition with a JSONB ordered fields array.

    Each entry in the fields array is a dict:
        {
            "id": "field_k3j9x0a1b",
            "label": "How was your visit?",
            "type": "text" | "textarea" | "select" | "radio" | "checkbox"
                    | "rating" | "date" | "email" | "number" | "nps" | "pagebreak",
            "required": true/false,
            "placeholder": "...",
            "description": "...",
            "options": [{"label": "Red", "value": "red"}, ...],  # choice types only
            "min_rating": 1,
            "max_rating": 5
        }

    The list is only ever replaced as a whole; answers reference fields by id.
    """

    __tablename__ = "forms"
    __table_args__ = (
        Index("ix_forms_created_by", "created_by"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    fields: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    ai_mode: Mapped[str] = mapped_column(
        Enum("none", "assisted_creation", "dynamic", name="form_ai_mode"),
        nullable=False,
        default="none",
        server_default="none",
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())

    author: Mapped["User"] = relationship(back_populates="forms")
    responses: Mapped[list["FormResponse"]] = relationship(back_populates="form", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Form {self.title} ({len(self.fields or [])} fields)>"
