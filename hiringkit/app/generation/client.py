"""Content generator for hiring kits with OpenAI integration.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic stub when no key is present, for development and tests.
"""

import json
import logging
from typing import Any, Protocol

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from hiringkit.app.config import Settings
from hiringkit.app.errors import ContentGenerationError
from hiringkit.app.models.common import SECTION_TITLES, Section
from hiringkit.app.models.content import (
    Competencies,
    EEOGuidelines,
    InterviewQuestion,
    InterviewStage,
    JobPost,
    KitContent,
    ProcessMap,
    ProcessStep,
    ReferenceCheck,
    SECTION_MODELS,
    RubricLevel,
    Scorecard,
    ScoringCriterion,
    SectionContent,
    SuccessMilestones,
    WorkSample,
    parse_section,
)
from hiringkit.app.models.intake import IntakeData, StyleSettings, SuccessMetrics

logger = logging.getLogger(__name__)


class ContentGenerator(Protocol):
    """Protocol for content generator implementations."""

    async def expand_intake(
        self, *, role_title: str, organization: str | None, mission: str | None
    ) -> IntakeData:
        """Expand a minimal express-mode request into full intake data."""
        ...

    async def generate_kit(self, *, intake: IntakeData, style: StyleSettings) -> KitContent:
        """Generate content for every section.

        Raises:
            ContentGenerationError: If generation fails or returns invalid content
        """
        ...

    async def generate_section(
        self,
        *,
        section: Section,
        intake: IntakeData,
        existing: SectionContent | None,
        style: StyleSettings,
    ) -> SectionContent:
        """Generate fresh content for one section.

        Raises:
            ContentGenerationError: If generation fails or returns invalid content
        """
        ...


RUBRIC = [
    RubricLevel(level=1, label="Insufficient", description="Little or no evidence of the competency."),
    RubricLevel(level=2, label="Developing", description="Some evidence, with significant gaps."),
    RubricLevel(level=3, label="Competent", description="Clear evidence that meets the bar."),
    RubricLevel(level=4, label="Strong", description="Consistent evidence beyond the bar."),
    RubricLevel(level=5, label="Exceptional", description="Outstanding evidence; raises the team's bar."),
]


class DeterministicStubGenerator:
    """Deterministic stub generator (no API key required)."""

    async def expand_intake(
        self, *, role_title: str, organization: str | None, mission: str | None
    ) -> IntakeData:
        """Build generic intake from the role title alone."""
        org = organization or "Your Organization"
        return IntakeData(
            role_title=role_title,
            organization=org,
            mission=mission or f"Lead {role_title} work that moves {org}'s mission forward.",
            outcomes=[
                f"Establish a working {role_title.lower()} plan within 90 days",
                "Deliver measurable improvements to key programs",
                "Build strong relationships with stakeholders",
            ],
            responsibilities=[
                f"Own day-to-day {role_title.lower()} priorities",
                "Coordinate with cross-functional partners",
                "Report progress against goals",
            ],
            core_skills=["Communication", "Planning", "Problem solving"],
            behavioral_competencies=["Ownership", "Collaboration", "Adaptability"],
            values=["Integrity", "Service"],
            success_metrics=SuccessMetrics(
                d90="Onboarded and delivering first wins",
                d180="Owning core responsibilities independently",
                d365="Recognized as a reliable leader in the area",
            ),
            must_have=["Relevant experience", "Strong written communication"],
            nice_to_have=["Sector experience"],
        )

    async def generate_kit(self, *, intake: IntakeData, style: StyleSettings) -> KitContent:
        """Generate deterministic content for every section."""
        return KitContent(
            **{
                section.value: self._section(section, intake)
                for section in Section
            }
        )

    async def generate_section(
        self,
        *,
        section: Section,
        intake: IntakeData,
        existing: SectionContent | None,
        style: StyleSettings,
    ) -> SectionContent:
        """Generate deterministic content for one section."""
        return self._section(section, intake)

    def _section(self, section: Section, intake: IntakeData) -> SectionContent:
        role = intake.role_title
        org = intake.organization
        responsibilities = intake.responsibilities or [f"Own core {role.lower()} responsibilities"]
        skills = intake.core_skills or ["Communication", "Planning"]

        if section == Section.scorecard:
            return Scorecard(
                mission=intake.mission or f"Deliver excellent {role.lower()} work for {org}.",
                outcomes=intake.outcomes or [f"Succeed as {role} within the first year"],
                responsibilities=responsibilities,
                competencies=Competencies(
                    core=skills,
                    behavioral=intake.behavioral_competencies or ["Ownership"],
                    values=intake.values or ["Integrity"],
                ),
                success=SuccessMilestones(
                    d90=intake.success_metrics.d90 or "Onboarded with early wins",
                    d180=intake.success_metrics.d180 or "Independently owns the role",
                    d365=intake.success_metrics.d365 or "Delivers the year's outcomes",
                ),
            )
        if section == Section.job_post:
            return JobPost(
                intro=f"{org} is hiring a {role}.",
                summary=intake.mission or f"Join {org} as our next {role}.",
                responsibilities=responsibilities,
                must=intake.must_have or skills,
                nice=intake.nice_to_have,
                comp=intake.compensation or "Competitive and commensurate with experience.",
                apply=intake.how_to_apply or "Send your resume and a short cover letter.",
            )
        if section in (Section.interview_stage1, Section.interview_stage2, Section.interview_stage3):
            focus = {
                Section.interview_stage1: "motivation and fit",
                Section.interview_stage2: "skills and experience",
                Section.interview_stage3: "judgment and values",
            }[section]
            return InterviewStage(
                questions=[
                    InterviewQuestion(
                        question=f"Tell us about your experience with {skill.lower()}.",
                        purpose=f"Assess {focus}",
                        ideal_response=f"Specific example showing {skill.lower()} in practice.",
                    )
                    for skill in skills[:3]
                ],
                rubric=list(RUBRIC),
            )
        if section == Section.work_sample:
            return WorkSample(
                scenario=intake.work_sample_scenario
                or f"Draft a 30-day plan for a new {role} at {org}.",
                instructions=[
                    "Spend no more than 90 minutes",
                    "Submit a short written response",
                ],
                scoring=[
                    ScoringCriterion(criteria="Clarity", weight=40, description="Clear and organized"),
                    ScoringCriterion(criteria="Judgment", weight=40, description="Sound priorities"),
                    ScoringCriterion(criteria="Craft", weight=20, description="Attention to detail"),
                ],
            )
        if section == Section.reference_check:
            return ReferenceCheck(
                questions=[
                    f"How did the candidate perform in work similar to a {role}?",
                    "What would you say are their greatest strengths?",
                    "Where could they grow?",
                    "Would you work with them again?",
                ]
            )
        if section == Section.process_map:
            return ProcessMap(
                steps=[
                    ProcessStep(name="Screen", description="Resume review", duration="1 week", owner="Hiring manager"),
                    ProcessStep(name="Interviews", description="Three interview stages", duration="2 weeks", owner="Panel"),
                    ProcessStep(name="Work sample", description="Take-home exercise", duration="1 week", owner="Hiring manager"),
                    ProcessStep(name="References", description="Two reference calls", duration="3 days", owner="HR"),
                    ProcessStep(name="Offer", description="Extend and negotiate", duration="1 week", owner="HR"),
                ],
                pacing=["Respond to every candidate within 5 business days"],
            )
        return EEOGuidelines(
            principles=[
                "Evaluate every candidate against the same criteria",
                "Ask only job-related questions",
                "Provide reasonable accommodations on request",
            ],
            disclaimer=(
                f"{org} is an equal opportunity employer. This kit is guidance, not legal advice."
            ),
        )


SYSTEM_PROMPT = """You write structured hiring materials for small organizations.
Always answer with a single JSON object and nothing else. Use only information
implied by the role description; do not invent salary figures or legal claims."""


class OpenAIContentGenerator:
    """OpenAI-backed content generator returning validated JSON."""

    def __init__(self, api_key: str, model: str = "gpt-4o", timeout_seconds: float = 120.0):
        """Initialize OpenAI generator.

        Args:
            api_key: OpenAI API key (read from settings)
            model: Model name to use
            timeout_seconds: Per-request timeout
        """
        self.client = AsyncOpenAI(api_key=api_key, timeout=timeout_seconds)
        self.model = model

    async def expand_intake(
        self, *, role_title: str, organization: str | None, mission: str | None
    ) -> IntakeData:
        """Expand express-mode input into intake data."""
        schema = json.dumps(IntakeData.model_json_schema())
        prompt = (
            f"Role title: {role_title}\n"
            f"Organization: {organization or 'Your Organization'}\n"
            f"Mission: {mission or 'not provided'}\n\n"
            f"Produce a complete intake object matching this JSON schema:\n{schema}"
        )
        data = await self._complete_json(prompt)
        data.setdefault("role_title", role_title)
        data.setdefault("organization", organization or "Your Organization")
        try:
            return IntakeData.model_validate(data)
        except ValidationError as e:
            raise ContentGenerationError("Generated intake failed validation") from e

    async def generate_kit(self, *, intake: IntakeData, style: StyleSettings) -> KitContent:
        """Generate every section in one completion."""
        schema = json.dumps(KitContent.model_json_schema())
        prompt = (
            f"{self._describe(intake, style)}\n\n"
            f"Write the complete hiring kit as a JSON object matching this schema:\n{schema}"
        )
        data = await self._complete_json(prompt)
        try:
            return KitContent.model_validate(data)
        except ValidationError as e:
            raise ContentGenerationError("Generated kit failed validation") from e

    async def generate_section(
        self,
        *,
        section: Section,
        intake: IntakeData,
        existing: SectionContent | None,
        style: StyleSettings,
    ) -> SectionContent:
        """Regenerate one section, using the current version as a reference."""
        schema = json.dumps(SECTION_MODELS[section].model_json_schema())
        current = existing.model_dump_json() if existing is not None else "none"
        prompt = (
            f"{self._describe(intake, style)}\n\n"
            f"Rewrite the '{SECTION_TITLES[section]}' section. Current version: {current}\n"
            f"Return a JSON object matching this schema:\n{schema}"
        )
        data = await self._complete_json(prompt)
        try:
            return parse_section(section, data)
        except ValidationError as e:
            raise ContentGenerationError(f"Generated {section.value} failed validation") from e

    async def _complete_json(self, prompt: str) -> dict[str, Any]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                temperature=0.7,
            )
        except OpenAIError as e:
            logger.error(f"OpenAI API call failed: {e}")
            raise ContentGenerationError("Content generation failed") from e

        content = response.choices[0].message.content or ""
        if not content.strip():
            raise ContentGenerationError("Content generation returned an empty response")

        try:
            data = json.loads(content)
        except ValueError as e:
            raise ContentGenerationError("Content generation returned invalid JSON") from e

        if not isinstance(data, dict):
            raise ContentGenerationError("Content generation returned a non-object")
        return data

    def _describe(self, intake: IntakeData, style: StyleSettings) -> str:
        lines = [
            "## Role",
            f"- Title: {intake.role_title}",
            f"- Organization: {intake.organization}",
            f"- Employment type: {intake.employment_type.value}",
            f"- Mission: {intake.mission or 'not provided'}",
        ]
        if intake.responsibilities:
            lines.append(f"- Responsibilities: {'; '.join(intake.responsibilities)}")
        if intake.core_skills:
            lines.append(f"- Core skills: {', '.join(intake.core_skills)}")
        if intake.must_have:
            lines.append(f"- Must have: {', '.join(intake.must_have)}")
        lines.append("")
        lines.append("## Style")
        lines.append(f"- Industry: {style.industry.value}")
        lines.append(f"- Seniority: {style.seniority.value}")
        lines.append(f"- Tone: {style.style.value}")
        return "\n".join(lines)


def get_content_generator(settings: Settings) -> ContentGenerator:
    """Factory function to get the content generator based on config.

    Returns:
        OpenAIContentGenerator if an API key is configured, stub otherwise
    """
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI content generator")
        return OpenAIContentGenerator(
            api_key=api_key.get_secret_value(),
            model=settings.openai_model,
            timeout_seconds=settings.openai_timeout_seconds,
        )

    logger.warning("No OpenAI API key configured, using deterministic stub generator")
    return DeterministicStubGenerator()
