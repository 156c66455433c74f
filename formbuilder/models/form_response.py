import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from formbuilder.core.database import Base


class FormResponse(Base):
    """One respondent's answers to a specific version of a form.

    The responses field is a JSONB list of question/value pairs:
        [
            {"questionId": "q001", "value": "opt-1"},          # select
            {"questionId": "q002", "value": ["opt-3", "opt-4"]},  # multiselect
            {"questionId": "q003", "value": 42},               # number
            {"questionId": "q004", "value": true},             # boolean
            {"questionId": "q005", "value": "free text"},      # text / date
            {"questionId": "q006", "value": null}
        ]
    """

    __tablename__ = "responses"
    __table_args__ = (
        Index("ix_responses_form_id", "form_id"),
        Index("ix_responses_user_id", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    form_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("forms.id"), nullable=False
    )
    form_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    responses: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    updated_offline: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    form: Mapped["Form"] = relationship(back_populates="responses")
    user: Mapped["User"] = relationship(back_populates="responses")

    @property
    def username(self) -> str | None:
        return self.user.username if self.user is not None else None

    def __repr__(self) -> str:
        source = "offline" if self.updated_offline else "online"
        return f"<FormResponse form={self.form_id} v{self.form_version} ({source})>"
