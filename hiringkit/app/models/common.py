"""Common types and enums shared across all models."""

from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    """Order lifecycle status."""

    draft = "draft"
    awaiting_payment = "awaiting_payment"
    paid = "paid"
    qa_pending = "qa_pending"
    ready = "ready"
    delivered = "delivered"


# Orders in these states may download exports
DELIVERABLE_STATUSES = frozenset({OrderStatus.paid, OrderStatus.ready, OrderStatus.delivered})

# Orders in these states lift the regeneration limit
PAID_STATUSES = frozenset(
    {OrderStatus.paid, OrderStatus.qa_pending, OrderStatus.ready, OrderStatus.delivered}
)


class KitStatus(str, Enum):
    """Kit lifecycle status."""

    draft = "draft"
    generating = "generating"
    generated = "generated"
    editing = "editing"
    published = "published"


class PlanTier(str, Enum):
    """Purchase tier. Premium orders go through human review."""

    standard = "standard"
    premium = "premium"


def plan_tier_for_amount(total_cents: int, threshold_cents: int = 10000) -> PlanTier:
    """Derive the plan tier from an order amount."""
    return PlanTier.premium if total_cents >= threshold_cents else PlanTier.standard


class ExportKind(str, Enum):
    """Export artifact kind."""

    combined = "combined"
    archive = "archive"


class ExportJobStatus(str, Enum):
    """Asynchronous export job status."""

    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class WebhookProcessingStatus(str, Enum):
    """Processing state of a received webhook event."""

    processing = "processing"
    completed = "completed"
    failed = "failed"


class Section(str, Enum):
    """Content sections of a hiring kit, in document order."""

    scorecard = "scorecard"
    job_post = "job_post"
    interview_stage1 = "interview_stage1"
    interview_stage2 = "interview_stage2"
    interview_stage3 = "interview_stage3"
    work_sample = "work_sample"
    reference_check = "reference_check"
    process_map = "process_map"
    eeo = "eeo"


SECTION_TITLES: dict[Section, str] = {
    Section.scorecard: "Role Scorecard",
    Section.job_post: "Job Post",
    Section.interview_stage1: "Interview Stage 1",
    Section.interview_stage2: "Interview Stage 2",
    Section.interview_stage3: "Interview Stage 3",
    Section.work_sample: "Work Sample",
    Section.reference_check: "Reference Check",
    Section.process_map: "Process Map",
    Section.eeo: "EEO Guidelines",
}

COVER_SLOT = "cover"

# Archive slots: cover followed by every section, each mapped to its file name
ARCHIVE_SLOTS: dict[str, str] = {
    COVER_SLOT: "1_Cover_and_Quick_Start.pdf",
    Section.scorecard.value: "2_Role_Scorecard.pdf",
    Section.job_post.value: "3_Job_Post.pdf",
    Section.interview_stage1.value: "4_Interview_Stage_1.pdf",
    Section.interview_stage2.value: "5_Interview_Stage_2.pdf",
    Section.interview_stage3.value: "6_Interview_Stage_3.pdf",
    Section.work_sample.value: "7_Work_Sample.pdf",
    Section.reference_check.value: "8_Reference_Check.pdf",
    Section.process_map.value: "9_Process_Map.pdf",
    Section.eeo.value: "10_EEO_Guidelines.pdf",
}


def slot_title(slot: str) -> str:
    """Human-readable title for an archive slot."""
    if slot == COVER_SLOT:
        return "Cover and Quick Start"
    return SECTION_TITLES[Section(slot)]
