"""Generated kit content, one typed model per section.

Generated content and admin/regeneration edits are kept apart: ``KitContent``
is what the generator produced, ``ContentOverlay`` holds edited sections only.
Callers read sections through ``effective_section`` so edits always win.
"""

from typing import Any

from pydantic import BaseModel, Field

from hiringkit.app.models.common import Section


class Competencies(BaseModel):
    core: list[str] = Field(default_factory=list)
    behavioral: list[str] = Field(default_factory=list)
    values: list[str] = Field(default_factory=list)


class SuccessMilestones(BaseModel):
    d90: str = ""
    d180: str = ""
    d365: str = ""


class Scorecard(BaseModel):
    """Role scorecard: mission, outcomes and how success is measured."""

    mission: str
    outcomes: list[str] = Field(default_factory=list)
    responsibilities: list[str] = Field(default_factory=list)
    competencies: Competencies = Field(default_factory=Competencies)
    success: SuccessMilestones = Field(default_factory=SuccessMilestones)


class JobPost(BaseModel):
    intro: str
    summary: str
    responsibilities: list[str] = Field(default_factory=list)
    must: list[str] = Field(default_factory=list)
    nice: list[str] = Field(default_factory=list)
    comp: str = ""
    apply: str = ""


class InterviewQuestion(BaseModel):
    question: str
    purpose: str | None = None
    ideal_response: str | None = None


class RubricLevel(BaseModel):
    level: int = Field(..., ge=1, le=5)
    label: str
    description: str


class InterviewStage(BaseModel):
    """One interview round: questions plus a 1-5 scoring rubric."""

    questions: list[InterviewQuestion] = Field(default_factory=list)
    rubric: list[RubricLevel] = Field(default_factory=list)


class ScoringCriterion(BaseModel):
    criteria: str
    weight: int = Field(..., ge=0, le=100)
    description: str


class WorkSample(BaseModel):
    scenario: str
    instructions: list[str] = Field(default_factory=list)
    scoring: list[ScoringCriterion] = Field(default_factory=list)


class ReferenceCheck(BaseModel):
    questions: list[str] = Field(default_factory=list)


class ProcessStep(BaseModel):
    name: str
    description: str
    duration: str | None = None
    owner: str | None = None


class ProcessMap(BaseModel):
    steps: list[ProcessStep] = Field(default_factory=list)
    pacing: list[str] = Field(default_factory=list)


class EEOGuidelines(BaseModel):
    principles: list[str] = Field(default_factory=list)
    disclaimer: str = ""


SectionContent = (
    Scorecard | JobPost | InterviewStage | WorkSample | ReferenceCheck | ProcessMap | EEOGuidelines
)

SECTION_MODELS: dict[Section, type[BaseModel]] = {
    Section.scorecard: Scorecard,
    Section.job_post: JobPost,
    Section.interview_stage1: InterviewStage,
    Section.interview_stage2: InterviewStage,
    Section.interview_stage3: InterviewStage,
    Section.work_sample: WorkSample,
    Section.reference_check: ReferenceCheck,
    Section.process_map: ProcessMap,
    Section.eeo: EEOGuidelines,
}


class KitContent(BaseModel):
    """Complete generated content for a kit."""

    scorecard: Scorecard
    job_post: JobPost
    interview_stage1: InterviewStage
    interview_stage2: InterviewStage
    interview_stage3: InterviewStage
    work_sample: WorkSample
    reference_check: ReferenceCheck
    process_map: ProcessMap
    eeo: EEOGuidelines

    def section(self, section: Section) -> SectionContent:
        return getattr(self, section.value)


class ContentOverlay(BaseModel):
    """Edited sections. A section left as None falls back to generated content."""

    scorecard: Scorecard | None = None
    job_post: JobPost | None = None
    interview_stage1: InterviewStage | None = None
    interview_stage2: InterviewStage | None = None
    interview_stage3: InterviewStage | None = None
    work_sample: WorkSample | None = None
    reference_check: ReferenceCheck | None = None
    process_map: ProcessMap | None = None
    eeo: EEOGuidelines | None = None

    def section(self, section: Section) -> SectionContent | None:
        return getattr(self, section.value)

    def with_section(self, section: Section, content: SectionContent) -> "ContentOverlay":
        """Return a copy with one section replaced and all others untouched."""
        return self.model_copy(update={section.value: content})

    def merged_with(self, other: "ContentOverlay") -> "ContentOverlay":
        """Return a copy where sections set on ``other`` replace ours."""
        updates = {
            section.value: other.section(section)
            for section in Section
            if other.section(section) is not None
        }
        return self.model_copy(update=updates)

    def edited_sections(self) -> list[Section]:
        return [section for section in Section if self.section(section) is not None]

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


def parse_section(section: Section, data: Any) -> SectionContent:
    """Validate raw data as the content model for ``section``."""
    return SECTION_MODELS[section].model_validate(data)  # type: ignore[return-value]


def effective_section(
    generated: KitContent | None, overlay: ContentOverlay, section: Section
) -> SectionContent | None:
    """Content for a section as it should be rendered: edited first, then generated."""
    edited = overlay.section(section)
    if edited is not None:
        return edited
    if generated is None:
        return None
    return generated.section(section)


def effective_content(
    generated: KitContent | None, overlay: ContentOverlay
) -> dict[Section, SectionContent | None]:
    """Effective content for every section, in document order."""
    return {section: effective_section(generated, overlay, section) for section in Section}
