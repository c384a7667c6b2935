"""Intake collection and kit creation."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import ValidationError

from hiringkit.app.db.context import RequestContext
from hiringkit.app.db.repositories import KitRecord, Repositories
from hiringkit.app.errors import ContentGenerationError, InvalidInputError
from hiringkit.app.generation.client import ContentGenerator
from hiringkit.app.models.common import KitStatus, Section, utc_now
from hiringkit.app.models.content import SectionContent, effective_content
from hiringkit.app.models.intake import GenerateKitRequest, IntakeData
from hiringkit.app.services.access import load_kit
from hiringkit.app.utils.logging import StructuredEventLogger

logger = logging.getLogger(__name__)
events = StructuredEventLogger(__name__)


@dataclass
class KitView:
    """Kit as shown to its owner, with edits applied over generated content."""

    id: UUID
    title: str
    status: KitStatus
    requires_review: bool
    intake: IntakeData
    content: dict[Section, SectionContent | None]
    edited_sections: list[Section]
    regen_counts: dict[str, int]
    qa_notes: str | None
    created_at: datetime
    updated_at: datetime


@dataclass
class InputsUpdate:
    intake: IntakeData
    updated_fields: list[str]


def kit_view(kit: KitRecord) -> KitView:
    overlay = kit.overlay()
    return KitView(
        id=kit.id,
        title=kit.title,
        status=kit.status,
        requires_review=kit.requires_review,
        intake=kit.intake_data(),
        content=effective_content(kit.content(), overlay),
        edited_sections=overlay.edited_sections(),
        regen_counts=dict(kit.regen_counts),
        qa_notes=kit.qa_notes,
        created_at=kit.created_at,
        updated_at=kit.updated_at,
    )


class IntakeService:
    """Turns an intake form into a generated kit."""

    def __init__(self, repos: Repositories, *, generator: ContentGenerator) -> None:
        self._repos = repos
        self._generator = generator

    async def create_kit(
        self, request: GenerateKitRequest, ctx: RequestContext | None = None
    ) -> KitRecord:
        """Create a kit and generate its content.

        The kit is persisted as generating before the generator runs. If
        generation fails it is left as a draft and the error is raised.

        Raises:
            ContentGenerationError: If express expansion or generation fails
        """
        if request.express_mode:
            intake = await self._generator.expand_intake(
                role_title=request.role_title.strip(),
                organization=request.organization,
                mission=request.mission,
            )
        else:
            intake = request.to_intake()

        now = utc_now()
        stored_intake = intake.model_dump(mode="json")
        stored_intake["style_settings"] = request.style_settings.model_dump(mode="json")
        stored_intake["express_mode"] = request.express_mode

        kit = await self._repos.kits.create(
            KitRecord(
                id=uuid.uuid4(),
                title=f"{intake.role_title} Hiring Kit",
                status=KitStatus.generating,
                intake=stored_intake,
                generated_content=None,
                edited_content={},
                regen_counts={},
                requires_review=False,
                qa_notes=None,
                user_id=ctx.user_id if ctx else None,
                org_id=ctx.org_id if ctx else None,
                edited_at=None,
                created_at=now,
                updated_at=now,
            )
        )
        await self._repos.commit()
        events.transition("kit", kit.id, None, KitStatus.generating.value)

        try:
            content = await self._generator.generate_kit(
                intake=intake, style=request.style_settings
            )
        except ContentGenerationError as e:
            await self._repos.kits.update(kit.id, status=KitStatus.draft)
            await self._repos.commit()
            events.failure("generate_kit", e, kit_id=kit.id)
            events.transition("kit", kit.id, KitStatus.generating.value, KitStatus.draft.value)
            raise

        generated = await self._repos.kits.update(
            kit.id,
            status=KitStatus.generated,
            generated_content=content.model_dump(mode="json"),
        )
        await self._repos.commit()
        events.transition("kit", kit.id, KitStatus.generating.value, KitStatus.generated.value)
        return generated or kit

    async def get_kit(self, kit_id: UUID, ctx: RequestContext | None = None) -> KitView:
        """Raises KitNotFoundError if the kit does not exist or is not the caller's."""
        return kit_view(await load_kit(self._repos, kit_id, ctx))

    async def update_inputs(
        self,
        kit_id: UUID,
        field_updates: dict[str, Any],
        ctx: RequestContext | None = None,
    ) -> InputsUpdate:
        """Apply a partial update to a kit's intake.

        The merged intake is validated as a whole. Style settings and the
        express flag captured at creation are kept. Generated content is not
        touched; sections pick up the new inputs when regenerated.

        Raises:
            InvalidInputError: If there are no updates, an unknown field, or the
                merged intake is invalid
            KitNotFoundError: If the kit does not exist or is not the caller's
        """
        if not field_updates:
            raise InvalidInputError("No field updates provided", code="NO_UPDATES")
        unknown = sorted(set(field_updates) - set(IntakeData.model_fields))
        if unknown:
            raise InvalidInputError(f"Unknown intake fields: {', '.join(unknown)}")

        kit = await load_kit(self._repos, kit_id, ctx)
        try:
            intake = kit.intake_data().with_overrides(field_updates)
        except ValidationError as e:
            raise InvalidInputError("Invalid intake data after updates") from e

        stored_intake = {**kit.intake, **intake.model_dump(mode="json")}
        now = utc_now()
        await self._repos.kits.update(kit_id, intake=stored_intake, edited_at=now, updated_at=now)
        await self._repos.commit()

        updated_fields = list(field_updates)
        logger.info(
            "Kit inputs updated",
            extra={"structured": {"kit_id": str(kit_id), "updated_fields": updated_fields}},
        )
        return InputsUpdate(intake=intake, updated_fields=updated_fields)
