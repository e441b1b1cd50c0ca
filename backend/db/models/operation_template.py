"""Operation template model."""

from typing import Any, Optional

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import TemplateVisibility
from db.base import BaseModel


class OperationTemplateModel(BaseModel):
    """Reusable transform operation referenced as ``{{ op }}``.

    Attributes:
        op: Unique reference name
        callback_type: template, default or pick
        visibility: public, or private to ``created_by_id``
        attributes: List of ``{"name", "value"}`` string pairs
    """

    __tablename__ = "operation_templates"

    op: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    callback_type: Mapped[str] = mapped_column(nullable=False)
    visibility: Mapped[str] = mapped_column(default=TemplateVisibility.PRIVATE.value, index=True)
    created_by_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    attributes: Mapped[Any] = mapped_column(JSON, nullable=False, default=list)
