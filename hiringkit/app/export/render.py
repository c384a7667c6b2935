"""PDF rendering of hiring kits with ReportLab.

The combined document starts every archive slot on a new page and records the
page each slot starts on, so the archive builder can split it without a
second render.
"""

import asyncio
import html
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas
from reportlab.platypus import (
    Flowable,
    ListFlowable,
    ListItem,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from hiringkit.app.errors import RenderError
from hiringkit.app.models.common import ARCHIVE_SLOTS, COVER_SLOT, Section, slot_title
from hiringkit.app.models.content import (
    EEOGuidelines,
    InterviewStage,
    JobPost,
    ProcessMap,
    ReferenceCheck,
    Scorecard,
    SectionContent,
    WorkSample,
)

logger = logging.getLogger(__name__)


@dataclass
class KitDocument:
    """Everything needed to render a kit: effective content per section."""

    kit_id: UUID
    title: str
    role_title: str
    organization: str
    sections: dict[Section, SectionContent | None]


@dataclass
class RenderedDocument:
    """Rendered combined PDF with the first page (1-based) of each slot."""

    pdf: bytes
    page_count: int
    slot_start_pages: dict[str, int]
    failed_slots: set[str] = field(default_factory=set)


class KitRenderer(Protocol):
    """Protocol for kit renderers."""

    async def render(self, document: KitDocument) -> RenderedDocument:
        """Render the combined document.

        Raises:
            RenderError: If the document as a whole cannot be produced
        """
        ...


class SectionMarker(Flowable):
    """Zero-size flowable marking where a slot begins."""

    def __init__(self, slot: str) -> None:
        super().__init__()
        self.slot = slot

    def wrap(self, availWidth: float, availHeight: float) -> tuple[float, float]:
        return (0, 0)

    def draw(self) -> None:
        pass


class _SlotTrackingDocTemplate(SimpleDocTemplate):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.slot_start_pages: dict[str, int] = {}

    def afterFlowable(self, flowable: Flowable) -> None:
        if isinstance(flowable, SectionMarker):
            self.slot_start_pages[flowable.slot] = self.page


def _text(value: str | None) -> str:
    return html.escape(value or "", quote=False)


def build_styles() -> dict[str, ParagraphStyle]:
    sample = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "KitTitle", parent=sample["Title"], fontSize=24, leading=30, spaceAfter=12
        ),
        "subtitle": ParagraphStyle(
            "KitSubtitle", parent=sample["Heading2"], textColor=colors.HexColor("#475569")
        ),
        "section": ParagraphStyle(
            "KitSection", parent=sample["Heading1"], textColor=colors.HexColor("#1e3a8a")
        ),
        "heading": ParagraphStyle("KitHeading", parent=sample["Heading3"], spaceBefore=10),
        "body": ParagraphStyle("KitBody", parent=sample["BodyText"], fontSize=10.5, leading=14),
        "small": ParagraphStyle(
            "KitSmall", parent=sample["BodyText"], fontSize=8.5, leading=11,
            textColor=colors.HexColor("#64748b"),
        ),
    }


def _bullets(items: list[str], styles: dict[str, ParagraphStyle]) -> list[Flowable]:
    if not items:
        return [Paragraph("<i>None listed.</i>", styles["body"])]
    return [
        ListFlowable(
            [ListItem(Paragraph(_text(item), styles["body"])) for item in items],
            bulletType="bullet",
            leftIndent=12,
        )
    ]


def _table(rows: list[list[str]], styles: dict[str, ParagraphStyle], widths: list[float]) -> Table:
    data = [[Paragraph(_text(cell), styles["body"]) for cell in row] for row in rows]
    table = Table(data, colWidths=widths, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#e2e8f0")),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cbd5e1")),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]
        )
    )
    return table


def _cover_flowables(document: KitDocument, styles: dict[str, ParagraphStyle]) -> list[Flowable]:
    contents = [slot_title(slot) for slot in ARCHIVE_SLOTS if slot != COVER_SLOT]
    return [
        Spacer(1, 1.5 * inch),
        Paragraph(_text(document.title), styles["title"]),
        Paragraph(_text(document.organization), styles["subtitle"]),
        Spacer(1, 0.4 * inch),
        Paragraph("Quick start", styles["heading"]),
        Paragraph(
            "Agree on the scorecard first, publish the job post, then run the three "
            "interview stages, the work sample and reference checks in order. "
            "Score every candidate against the same rubric.",
            styles["body"],
        ),
        Paragraph("Contents", styles["heading"]),
        *_bullets(contents, styles),
    ]


def _section_flowables(
    section: Section, content: SectionContent, styles: dict[str, ParagraphStyle]
) -> list[Flowable]:
    story: list[Flowable] = [Paragraph(_text(slot_title(section.value)), styles["section"])]

    if isinstance(content, Scorecard):
        story += [
            Paragraph("Mission", styles["heading"]),
            Paragraph(_text(content.mission), styles["body"]),
            Paragraph("Outcomes", styles["heading"]),
            *_bullets(content.outcomes, styles),
            Paragraph("Responsibilities", styles["heading"]),
            *_bullets(content.responsibilities, styles),
            Paragraph("Competencies", styles["heading"]),
            _table(
                [
                    ["Core", "Behavioral", "Values"],
                    [
                        ", ".join(content.competencies.core),
                        ", ".join(content.competencies.behavioral),
                        ", ".join(content.competencies.values),
                    ],
                ],
                styles,
                [2.2 * inch] * 3,
            ),
            Paragraph("Success", styles["heading"]),
            _table(
                [
                    ["90 days", "180 days", "365 days"],
                    [content.success.d90, content.success.d180, content.success.d365],
                ],
                styles,
                [2.2 * inch] * 3,
            ),
        ]
    elif isinstance(content, JobPost):
        story += [
            Paragraph(_text(content.intro), styles["body"]),
            Spacer(1, 6),
            Paragraph(_text(content.summary), styles["body"]),
            Paragraph("What you'll do", styles["heading"]),
            *_bullets(content.responsibilities, styles),
            Paragraph("Must have", styles["heading"]),
            *_bullets(content.must, styles),
            Paragraph("Nice to have", styles["heading"]),
            *_bullets(content.nice, styles),
            Paragraph("Compensation", styles["heading"]),
            Paragraph(_text(content.comp), styles["body"]),
            Paragraph("How to apply", styles["heading"]),
            Paragraph(_text(content.apply), styles["body"]),
        ]
    elif isinstance(content, InterviewStage):
        story.append(Paragraph("Questions", styles["heading"]))
        for number, question in enumerate(content.questions, start=1):
            story.append(Paragraph(f"<b>{number}.</b> {_text(question.question)}", styles["body"]))
            if question.purpose:
                story.append(Paragraph(f"Purpose: {_text(question.purpose)}", styles["small"]))
            if question.ideal_response:
                story.append(
                    Paragraph(f"Look for: {_text(question.ideal_response)}", styles["small"])
                )
            story.append(Spacer(1, 6))
        story.append(Paragraph("Scoring rubric", styles["heading"]))
        story.append(
            _table(
                [["Level", "Label", "Description"]]
                + [[str(row.level), row.label, row.description] for row in content.rubric],
                styles,
                [0.7 * inch, 1.4 * inch, 4.5 * inch],
            )
        )
    elif isinstance(content, WorkSample):
        story += [
            Paragraph("Scenario", styles["heading"]),
            Paragraph(_text(content.scenario), styles["body"]),
            Paragraph("Instructions", styles["heading"]),
            *_bullets(content.instructions, styles),
            Paragraph("Scoring", styles["heading"]),
            _table(
                [["Criteria", "Weight", "Description"]]
                + [[row.criteria, f"{row.weight}%", row.description] for row in content.scoring],
                styles,
                [1.6 * inch, 0.8 * inch, 4.2 * inch],
            ),
        ]
    elif isinstance(content, ReferenceCheck):
        story += [Paragraph("Questions", styles["heading"]), *_bullets(content.questions, styles)]
    elif isinstance(content, ProcessMap):
        story += [
            Paragraph("Steps", styles["heading"]),
            _table(
                [["Step", "Description", "Duration", "Owner"]]
                + [
                    [step.name, step.description, step.duration or "", step.owner or ""]
                    for step in content.steps
                ],
                styles,
                [1.3 * inch, 3.1 * inch, 1.1 * inch, 1.1 * inch],
            ),
            Paragraph("Pacing", styles["heading"]),
            *_bullets(content.pacing, styles),
        ]
    elif isinstance(content, EEOGuidelines):
        story += [
            Paragraph("Principles", styles["heading"]),
            *_bullets(content.principles, styles),
            Spacer(1, 12),
            Paragraph(_text(content.disclaimer), styles["small"]),
        ]
    else:
        raise TypeError(f"Unsupported content for {section.value}: {type(content).__name__}")

    return story


class ReportLabRenderer:
    """Local ReportLab renderer. Rendering runs in a worker thread."""

    async def render(self, document: KitDocument) -> RenderedDocument:
        """Render the combined kit document."""
        try:
            return await asyncio.to_thread(self._render_sync, document)
        except RenderError:
            raise
        except Exception as e:
            logger.error(f"Kit render failed for {document.kit_id}: {e}")
            raise RenderError("Failed to render kit document") from e

    def _render_sync(self, document: KitDocument) -> RenderedDocument:
        styles = build_styles()
        story: list[Flowable] = [SectionMarker(COVER_SLOT), *_cover_flowables(document, styles)]
        failed_slots: set[str] = set()

        for section in Section:
            content = document.sections.get(section)
            if content is None:
                failed_slots.add(section.value)
                continue
            try:
                flowables = _section_flowables(section, content, styles)
            except Exception as e:
                logger.warning(f"Section {section.value} could not be laid out: {e}")
                failed_slots.add(section.value)
                continue
            story += [PageBreak(), SectionMarker(section.value), *flowables]

        buffer = io.BytesIO()
        doc = _SlotTrackingDocTemplate(
            buffer,
            pagesize=LETTER,
            title=document.title,
            author=document.organization,
            leftMargin=0.75 * inch,
            rightMargin=0.75 * inch,
            topMargin=0.75 * inch,
            bottomMargin=0.75 * inch,
            invariant=1,
        )
        doc.build(story)

        return RenderedDocument(
            pdf=buffer.getvalue(),
            page_count=doc.page,
            slot_start_pages=dict(doc.slot_start_pages),
            failed_slots=failed_slots,
        )


def render_placeholder(slot: str, kit_title: str) -> bytes:
    """Single-page stand-in for a slot that could not be produced."""
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=LETTER, invariant=1)
    width, height = LETTER
    pdf.setTitle(f"{kit_title} - {slot_title(slot)}")
    pdf.setFont("Helvetica-Bold", 18)
    pdf.drawString(inch, height - 1.5 * inch, slot_title(slot))
    pdf.setFont("Helvetica", 11)
    pdf.drawString(inch, height - 1.9 * inch, kit_title)
    pdf.drawString(
        inch,
        height - 2.4 * inch,
        "This section could not be generated. Request a new export to try again.",
    )
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()
