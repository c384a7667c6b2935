"""Tests for kit rendering, per-slot splitting and archive packaging."""

import dataclasses
import io
import zipfile
from collections.abc import Awaitable, Callable

import pytest
from PyPDF2 import PdfReader

from hiringkit.app.db.repositories import KitRecord
from hiringkit.app.errors import RenderError
from hiringkit.app.export.archive import (
    SlotFiles,
    build_archive,
    build_readme,
    slot_page_ranges,
    split_by_slot,
)
from hiringkit.app.export.pipeline import build_document
from hiringkit.app.export.render import (
    KitDocument,
    RenderedDocument,
    ReportLabRenderer,
    render_placeholder,
)
from hiringkit.app.models.common import ARCHIVE_SLOTS, COVER_SLOT, Section

MakeKit = Callable[..., Awaitable[KitRecord]]


def page_count(pdf: bytes) -> int:
    return len(PdfReader(io.BytesIO(pdf)).pages)


@pytest.mark.asyncio
async def test_render_marks_every_slot(make_kit: MakeKit) -> None:
    kit = await make_kit()

    rendered = await ReportLabRenderer().render(build_document(kit))

    assert rendered.pdf.startswith(b"%PDF")
    assert rendered.failed_slots == set()
    assert list(rendered.slot_start_pages) == list(ARCHIVE_SLOTS)
    assert rendered.slot_start_pages[COVER_SLOT] == 1
    starts = list(rendered.slot_start_pages.values())
    assert starts == sorted(starts)
    assert page_count(rendered.pdf) == rendered.page_count


@pytest.mark.asyncio
async def test_split_produces_one_pdf_per_slot(make_kit: MakeKit) -> None:
    kit = await make_kit()
    rendered = await ReportLabRenderer().render(build_document(kit))

    slot_files = split_by_slot(rendered, kit.title)

    assert list(slot_files.files) == list(ARCHIVE_SLOTS)
    assert slot_files.fallback_slots == []
    assert sum(page_count(pdf) for pdf in slot_files.files.values()) == rendered.page_count


@pytest.mark.asyncio
async def test_missing_section_gets_placeholder(make_kit: MakeKit) -> None:
    kit = await make_kit()
    document = build_document(kit)
    document = dataclasses.replace(document, sections={**document.sections, Section.eeo: None})

    rendered = await ReportLabRenderer().render(document)
    slot_files = split_by_slot(rendered, kit.title)

    assert rendered.failed_slots == {"eeo"}
    assert slot_files.fallback_slots == ["eeo"]
    assert page_count(slot_files.files["eeo"]) == 1
    assert len(slot_files.files) == len(ARCHIVE_SLOTS)


def test_page_ranges_run_to_next_slot() -> None:
    rendered = RenderedDocument(
        pdf=b"", page_count=6, slot_start_pages={"cover": 1, "scorecard": 2, "job_post": 5}
    )

    assert slot_page_ranges(rendered, 6) == {
        "cover": (1, 1),
        "scorecard": (2, 4),
        "job_post": (5, 6),
    }


def test_unreadable_document_raises_render_error() -> None:
    rendered = RenderedDocument(pdf=b"not a pdf", page_count=1, slot_start_pages={"cover": 1})

    with pytest.raises(RenderError):
        split_by_slot(rendered, "Kit")


def test_archive_contains_fixed_names_and_readme() -> None:
    placeholder = render_placeholder(COVER_SLOT, "Analyst Hiring Kit")
    slot_files = SlotFiles(
        files={slot: placeholder for slot in ARCHIVE_SLOTS}, fallback_slots=["eeo"]
    )

    data = build_archive("Analyst Hiring Kit", slot_files)

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        names = archive.namelist()
        readme = archive.read("README.txt").decode()

    assert names == [*ARCHIVE_SLOTS.values(), "README.txt"]
    assert len(names) == 11
    assert "10_EEO_Guidelines.pdf" in readme.split("placeholder page")[1]


def test_archive_is_byte_stable() -> None:
    placeholder = render_placeholder(COVER_SLOT, "Kit")
    slot_files = SlotFiles(files={slot: placeholder for slot in ARCHIVE_SLOTS}, fallback_slots=[])

    assert build_archive("Kit", slot_files) == build_archive("Kit", slot_files)


def test_readme_without_fallbacks_lists_every_file() -> None:
    readme = build_readme("Kit", [])

    for file_name in ARCHIVE_SLOTS.values():
        assert file_name in readme
    assert "placeholder" not in readme


@pytest.mark.asyncio
async def test_renderer_wraps_unexpected_failures(make_kit: MakeKit) -> None:
    class BrokenRenderer(ReportLabRenderer):
        def _render_sync(self, document: KitDocument) -> RenderedDocument:
            raise ValueError("layout exploded")

    kit = await make_kit()

    with pytest.raises(RenderError):
        await BrokenRenderer().render(build_document(kit))
