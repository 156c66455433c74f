import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from formbuilder.core.database import Base


class Form(Base):
    """Questionnaire definition with a JSONB questions array.

    The array is stored in canonical order (see ``services.hierarchy``), each
    entry shaped like:
        {
            "id": "q001",
            "text": "Do you own a vehicle?",
            "type": "text" | "number" | "select" | "multiselect" | "date" | "boolean",
            "required": true/false,
            "options": [{"id": "opt-1", "text": "Yes"}, ...],  # select types only
            "parentId": "q000",          # sub-questions only
            "parentOptionId": "opt-1",   # sub-questions only
            "includeInPowerBI": false,
            "powerBIFieldName": null
        }
    """

    __tablename__ = "forms"
    __table_args__ = (
        Index("ix_forms_created_by", "created_by"),
        Index("ix_forms_updated_at", "updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    questions: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())

    owner: Mapped["User"] = relationship(back_populates="forms")
    responses: Mapped[list["FormResponse"]] = relationship(back_populates="form", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<Form {self.name} (v{self.version})>"
