"""Pydantic models for the hiring kit domain."""

from hiringkit.app.models.common import (
    ARCHIVE_SLOTS,
    COVER_SLOT,
    DELIVERABLE_STATUSES,
    PAID_STATUSES,
    SECTION_TITLES,
    ExportJobStatus,
    ExportKind,
    KitStatus,
    OrderStatus,
    PlanTier,
    Section,
    WebhookProcessingStatus,
    plan_tier_for_amount,
    slot_title,
    utc_now,
)
from hiringkit.app.models.content import (
    Competencies,
    ContentOverlay,
    EEOGuidelines,
    InterviewQuestion,
    InterviewStage,
    JobPost,
    KitContent,
    ProcessMap,
    ProcessStep,
    ReferenceCheck,
    RubricLevel,
    Scorecard,
    ScoringCriterion,
    SectionContent,
    SuccessMilestones,
    WorkSample,
    effective_content,
    effective_section,
    parse_section,
)
from hiringkit.app.models.intake import (
    EmploymentType,
    GenerateKitRequest,
    Industry,
    IntakeData,
    Seniority,
    StyleSettings,
    SuccessMetrics,
    WritingStyle,
)

__all__ = [
    # Common
    "ARCHIVE_SLOTS",
    "COVER_SLOT",
    "DELIVERABLE_STATUSES",
    "PAID_STATUSES",
    "SECTION_TITLES",
    "ExportJobStatus",
    "ExportKind",
    "KitStatus",
    "OrderStatus",
    "PlanTier",
    "Section",
    "WebhookProcessingStatus",
    "plan_tier_for_amount",
    "slot_title",
    "utc_now",
    # Content
    "Competencies",
    "ContentOverlay",
    "EEOGuidelines",
    "InterviewQuestion",
    "InterviewStage",
    "JobPost",
    "KitContent",
    "ProcessMap",
    "ProcessStep",
    "ReferenceCheck",
    "RubricLevel",
    "Scorecard",
    "ScoringCriterion",
    "SectionContent",
    "SuccessMilestones",
    "WorkSample",
    "effective_content",
    "effective_section",
    "parse_section",
    # Intake
    "EmploymentType",
    "GenerateKitRequest",
    "Industry",
    "IntakeData",
    "Seniority",
    "StyleSettings",
    "SuccessMetrics",
    "WritingStyle",
]
