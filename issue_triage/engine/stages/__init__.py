"""Triage collaborators, one per pipeline stage."""

from issue_triage.engine.stages.base import TriageStage
from issue_triage.engine.stages.classification import IssueClassifier
from issue_triage.engine.stages.comments import FALLBACK_COMMENT, CommentGenerator
from issue_triage.engine.stages.duplicates import DuplicateDetector
from issue_triage.engine.stages.labels import LabelAssigner, validate_labels

__all__ = [
    "FALLBACK_COMMENT",
    "CommentGenerator",
    "DuplicateDetector",
    "IssueClassifier",
    "LabelAssigner",
    "TriageStage",
    "validate_labels",
]
