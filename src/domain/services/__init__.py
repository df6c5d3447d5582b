"""Domain services."""

from src.domain.services.assignment_progress import AssignmentProgressService
from src.domain.services.audit import AuditLogger
from src.domain.services.evaluation import EvaluationRequest, EvaluationService
from src.domain.services.progress import (
    AssignmentProgressReconciler,
    ProgressReconciliation,
    ReconciliationOutcome,
)
from src.domain.services.submission import (
    BatchSubmissionResult,
    CompetencySubmissionService,
    SubmissionItem,
    SubmissionQuery,
)

__all__ = [
    "AssignmentProgressReconciler",
    "AssignmentProgressService",
    "AuditLogger",
    "BatchSubmissionResult",
    "CompetencySubmissionService",
    "EvaluationRequest",
    "EvaluationService",
    "ProgressReconciliation",
    "ReconciliationOutcome",
    "SubmissionItem",
    "SubmissionQuery",
]
