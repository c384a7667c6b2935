"""Splitting the combined PDF into per-slot files and packaging them as a ZIP."""

import io
import logging
import zipfile
from dataclasses import dataclass

from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.errors import PdfReadError

from hiringkit.app.errors import RenderError
from hiringkit.app.export.render import RenderedDocument, render_placeholder
from hiringkit.app.models.common import ARCHIVE_SLOTS, slot_title

logger = logging.getLogger(__name__)

# Fixed timestamp keeps archives byte-stable for identical content
_ZIP_DATE_TIME = (1980, 1, 1, 0, 0, 0)


@dataclass
class SlotFiles:
    """One PDF per archive slot, in archive order."""

    files: dict[str, bytes]
    fallback_slots: list[str]


def slot_page_ranges(rendered: RenderedDocument, total_pages: int) -> dict[str, tuple[int, int]]:
    """1-based inclusive page range for every slot that has a start page."""
    starts = sorted(
        (page, slot)
        for slot, page in rendered.slot_start_pages.items()
        if slot not in rendered.failed_slots
    )
    ranges: dict[str, tuple[int, int]] = {}
    for index, (start, slot) in enumerate(starts):
        end = starts[index + 1][0] - 1 if index + 1 < len(starts) else total_pages
        if end >= start:
            ranges[slot] = (start, end)
    return ranges


def split_by_slot(rendered: RenderedDocument, kit_title: str) -> SlotFiles:
    """Extract each slot's pages; slots that fail get a placeholder instead.

    Raises:
        RenderError: If the combined document itself cannot be read
    """
    try:
        reader = PdfReader(io.BytesIO(rendered.pdf))
        total_pages = len(reader.pages)
    except PdfReadError as e:
        raise RenderError("Rendered document could not be read for splitting") from e

    ranges = slot_page_ranges(rendered, total_pages)
    files: dict[str, bytes] = {}
    fallback_slots: list[str] = []

    for slot in ARCHIVE_SLOTS:
        page_range = ranges.get(slot)
        if page_range is None or page_range[1] > total_pages:
            logger.warning(f"No pages for slot {slot}, using placeholder")
            files[slot] = render_placeholder(slot, kit_title)
            fallback_slots.append(slot)
            continue

        start, end = page_range
        try:
            writer = PdfWriter()
            for page_index in range(start - 1, end):
                writer.add_page(reader.pages[page_index])
            buffer = io.BytesIO()
            writer.write(buffer)
            files[slot] = buffer.getvalue()
        except (PdfReadError, IndexError, ValueError) as e:
            logger.warning(f"Splitting slot {slot} failed ({e}), using placeholder")
            files[slot] = render_placeholder(slot, kit_title)
            fallback_slots.append(slot)

    return SlotFiles(files=files, fallback_slots=fallback_slots)


def build_readme(kit_title: str, fallback_slots: list[str]) -> str:
    lines = [
        kit_title,
        "=" * len(kit_title),
        "",
        "This archive contains one PDF per part of your hiring kit:",
        "",
    ]
    lines += [f"  {file_name}  ({slot_title(slot)})" for slot, file_name in ARCHIVE_SLOTS.items()]
    if fallback_slots:
        lines += [
            "",
            "The following parts could not be generated and contain a placeholder page.",
            "Request a new export to try again:",
            "",
        ]
        lines += [f"  {ARCHIVE_SLOTS[slot]}" for slot in fallback_slots]
    lines.append("")
    return "\n".join(lines)


def build_archive(kit_title: str, slot_files: SlotFiles) -> bytes:
    """ZIP every slot file under its fixed name, plus a README."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for slot, file_name in ARCHIVE_SLOTS.items():
            info = zipfile.ZipInfo(file_name, date_time=_ZIP_DATE_TIME)
            info.compress_type = zipfile.ZIP_DEFLATED
            archive.writestr(info, slot_files.files[slot])

        readme = zipfile.ZipInfo("README.txt", date_time=_ZIP_DATE_TIME)
        readme.compress_type = zipfile.ZIP_DEFLATED
        archive.writestr(readme, build_readme(kit_title, slot_files.fallback_slots))

    return buffer.getvalue()
