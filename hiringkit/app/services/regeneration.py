"""Per-section regeneration with a free-tier limit."""

from dataclasses import dataclass
from typing import Any, Literal
from uuid import UUID

from pydantic import ValidationError

from hiringkit.app.config import Settings
from hiringkit.app.db.context import RequestContext
from hiringkit.app.db.repositories import KitRecord, Repositories
from hiringkit.app.errors import (
    ContentGenerationError,
    InvalidInputError,
    KitNotFoundError,
    RegenLimitExceededError,
)
from hiringkit.app.generation.client import ContentGenerator
from hiringkit.app.models.common import Section, utc_now
from hiringkit.app.models.content import SectionContent, effective_section
from hiringkit.app.models.intake import StyleSettings
from hiringkit.app.services.access import load_kit
from hiringkit.app.services.orders import has_paid_order
from hiringkit.app.utils.logging import StructuredEventLogger
from hiringkit.app.utils.metrics import metrics

events = StructuredEventLogger(__name__)


@dataclass
class RegenerationResult:
    section: Section
    content: SectionContent
    regen_count: int
    remaining: int | Literal["unlimited"]


def stored_style(kit: KitRecord) -> StyleSettings:
    """Style settings captured when the kit was created."""
    return StyleSettings.model_validate(kit.intake.get("style_settings") or {})


def parse_section_name(value: str | Section) -> Section:
    try:
        return Section(value)
    except ValueError as e:
        raise InvalidInputError(f"Unknown section: {value}") from e


class RegenerationLimiter:
    """Regenerates one section at a time.

    Kits without a paid order get ``regen_limit`` regenerations per section.
    A paid order lifts the limit.
    """

    def __init__(
        self, repos: Repositories, *, generator: ContentGenerator, settings: Settings
    ) -> None:
        self._repos = repos
        self._generator = generator
        self._limit = settings.regen_limit

    async def regenerate(
        self,
        kit_id: UUID,
        section: str | Section,
        *,
        intake_overrides: dict[str, Any] | None = None,
        style_settings: StyleSettings | None = None,
        ctx: RequestContext | None = None,
    ) -> RegenerationResult:
        """Generate fresh content for a section and store it as an edit.

        Raises:
            InvalidInputError: If the section or overrides are invalid
            KitNotFoundError: If the kit does not exist or is not the caller's
            RegenLimitExceededError: If an unpaid kit used up its regenerations
            ContentGenerationError: If generation fails; the count is unchanged
        """
        target = parse_section_name(section)

        kit = await load_kit(self._repos, kit_id, ctx)

        count = kit.regen_counts.get(target.value, 0)
        paid = await has_paid_order(self._repos, kit_id)
        if not paid and count >= self._limit:
            metrics.inc_regeneration(target.value, "limited")
            raise RegenLimitExceededError("Regeneration limit exceeded. Upgrade to continue.")

        try:
            intake = kit.intake_data().with_overrides(intake_overrides)
        except ValidationError as e:
            raise InvalidInputError("Invalid intake overrides") from e

        overlay = kit.overlay()
        try:
            content = await self._generator.generate_section(
                section=target,
                intake=intake,
                existing=effective_section(kit.content(), overlay, target),
                style=style_settings or stored_style(kit),
            )
        except ContentGenerationError as e:
            metrics.inc_regeneration(target.value, "failed")
            events.failure("regenerate_section", e, kit_id=kit_id, section=target.value)
            raise

        # Re-read so edits and counts written while generating are kept
        current = await self._repos.kits.get(kit_id)
        if current is None:
            raise KitNotFoundError(f"Kit {kit_id} not found")
        new_count = current.regen_counts.get(target.value, 0) + 1
        now = utc_now()
        await self._repos.kits.update(
            kit_id,
            edited_content=current.overlay().with_section(target, content).to_json(),
            regen_counts={**current.regen_counts, target.value: new_count},
            edited_at=now,
            updated_at=now,
        )
        await self._repos.commit()
        metrics.inc_regeneration(target.value, "success")

        return RegenerationResult(
            section=target,
            content=content,
            regen_count=new_count,
            remaining="unlimited" if paid else max(0, self._limit - new_count),
        )
