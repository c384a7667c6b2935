"""Intake models - what the user tells us about the role."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EmploymentType(str, Enum):
    """Employment arrangement for the role."""

    full_time = "full_time"
    part_time = "part_time"
    contract = "contract"
    internship = "internship"


class Industry(str, Enum):
    general = "general"
    nonprofit = "nonprofit"
    education = "education"
    faith_based = "faith_based"
    smb = "smb"


class Seniority(str, Enum):
    coordinator = "coordinator"
    manager = "manager"
    director = "director"


class WritingStyle(str, Enum):
    formal = "formal"
    plain_english = "plain_english"
    friendly = "friendly"


class StyleSettings(BaseModel):
    """Tone and framing applied to generated content."""

    industry: Industry = Industry.general
    seniority: Seniority = Seniority.manager
    style: WritingStyle = WritingStyle.plain_english


class SuccessMetrics(BaseModel):
    """What success looks like at 90, 180 and 365 days."""

    d90: str = ""
    d180: str = ""
    d365: str = ""


class IntakeData(BaseModel):
    """Normalized description of the role used for all content generation."""

    model_config = ConfigDict(extra="ignore")

    role_title: str = Field(..., min_length=2, max_length=100)
    organization: str = Field(..., min_length=2, max_length=100)
    reports_to: str | None = Field(None, max_length=100)
    department: str | None = Field(None, max_length=100)
    location: str | None = Field(None, max_length=100)
    employment_type: EmploymentType = EmploymentType.full_time
    mission: str = Field("", max_length=1000)
    outcomes: list[str] = Field(default_factory=list, max_length=8)
    responsibilities: list[str] = Field(default_factory=list, max_length=12)
    core_skills: list[str] = Field(default_factory=list, max_length=10)
    behavioral_competencies: list[str] = Field(default_factory=list, max_length=8)
    values: list[str] = Field(default_factory=list, max_length=6)
    success_metrics: SuccessMetrics = Field(default_factory=SuccessMetrics)
    must_have: list[str] = Field(default_factory=list, max_length=10)
    nice_to_have: list[str] = Field(default_factory=list, max_length=10)
    compensation: str | None = Field(None, max_length=200)
    how_to_apply: str | None = Field(None, max_length=500)
    work_sample_scenario: str | None = Field(None, max_length=1000)

    def with_overrides(self, overrides: dict[str, Any] | None) -> "IntakeData":
        """Return a copy with the given fields replaced, revalidated."""
        if not overrides:
            return self
        merged = self.model_dump()
        merged.update(overrides)
        return IntakeData.model_validate(merged)


class GenerateKitRequest(BaseModel):
    """Request body for POST /kits/generate.

    Express mode only needs a role title; the generator fills in the rest.
    Detailed mode requires organization and mission and takes the form fields
    as given.
    """

    express_mode: bool = False
    role_title: str = Field(..., min_length=2, max_length=100)
    organization: str | None = Field(None, max_length=100)
    mission: str | None = Field(None, max_length=1000)
    reports_to: str | None = Field(None, max_length=100)
    department: str | None = Field(None, max_length=100)
    location: str | None = Field(None, max_length=100)
    employment_type: EmploymentType = EmploymentType.full_time
    outcomes: list[str] = Field(default_factory=list, max_length=8)
    responsibilities: list[str] = Field(default_factory=list, max_length=12)
    core_skills: list[str] = Field(default_factory=list, max_length=10)
    behavioral_competencies: list[str] = Field(default_factory=list, max_length=8)
    values: list[str] = Field(default_factory=list, max_length=6)
    must_have: list[str] = Field(default_factory=list, max_length=10)
    nice_to_have: list[str] = Field(default_factory=list, max_length=10)
    compensation: str | None = Field(None, max_length=200)
    how_to_apply: str | None = Field(None, max_length=500)
    work_sample_scenario: str | None = Field(None, max_length=1000)
    style_settings: StyleSettings = Field(default_factory=StyleSettings)

    @model_validator(mode="after")
    def validate_detailed_mode(self) -> "GenerateKitRequest":
        """Detailed mode needs an organization and a mission statement."""
        if self.express_mode:
            return self
        if not self.organization or len(self.organization.strip()) < 2:
            raise ValueError("organization is required (at least 2 characters) in detailed mode")
        if not self.mission or len(self.mission.strip()) < 10:
            raise ValueError("mission is required (at least 10 characters) in detailed mode")
        return self

    def to_intake(self) -> IntakeData:
        """Normalize detailed-mode form fields into intake data."""
        return IntakeData(
            role_title=self.role_title.strip(),
            organization=(self.organization or "").strip(),
            reports_to=self.reports_to,
            department=self.department,
            location=self.location,
            employment_type=self.employment_type,
            mission=(self.mission or "").strip(),
            outcomes=self.outcomes,
            responsibilities=self.responsibilities,
            core_skills=self.core_skills,
            behavioral_competencies=self.behavioral_competencies,
            values=self.values,
            must_have=self.must_have,
            nice_to_have=self.nice_to_have,
            compensation=self.compensation,
            how_to_apply=self.how_to_apply,
            work_sample_scenario=self.work_sample_scenario,
        )
