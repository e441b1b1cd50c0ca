"""Database models for Hookflow.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.workflow import Workflow
from db.models.workflow_run import WorkflowRun
from db.models.operation_template import OperationTemplateModel

__all__ = [
    "Workflow",
    "WorkflowRun",
    "OperationTemplateModel",
]
