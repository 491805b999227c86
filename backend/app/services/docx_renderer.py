"""
Word (.docx) output (python-docx).

Single section, US Letter. Email documents get a bold subject, one gray
paragraph per header field, a bottom-bordered paragraph as a horizontal rule
and then one paragraph per body line. Other documents get one paragraph per
line of plain text. Blank lines are kept as empty paragraphs.
"""

import io
from typing import Optional

from docx import Document
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Pt, RGBColor, Twips

from app.models.document import EmailMetadata, IntermediateDocument
from app.services.text_helpers import UNKNOWN, xml_safe

FONT_NAME = "Calibri"
PAGE_WIDTH = Twips(12240)
PAGE_HEIGHT = Twips(15840)

HEADER_COLOR = RGBColor(0x66, 0x66, 0x66)
RULE_COLOR = "CCCCCC"


def _add_text_paragraph(
    document,
    text: str,
    size: float,
    space_after: float,
    bold: bool = False,
    color: Optional[RGBColor] = None,
):
    paragraph = document.add_paragraph()
    run = paragraph.add_run(xml_safe(text))
    run.font.name = FONT_NAME
    run.font.size = Pt(size)
    run.bold = bold
    if color is not None:
        run.font.color.rgb = color
    paragraph.paragraph_format.space_after = Pt(space_after)
    return paragraph


def _add_rule(document):
    """Empty paragraph with a thin bottom border."""
    paragraph = document.add_paragraph()
    # pBdr must precede w:spacing inside w:pPr, so add it before space_after
    borders = OxmlElement("w:pBdr")
    bottom = OxmlElement("w:bottom")
    bottom.set(qn("w:val"), "single")
    bottom.set(qn("w:sz"), "4")
    bottom.set(qn("w:space"), "1")
    bottom.set(qn("w:color"), RULE_COLOR)
    borders.append(bottom)
    paragraph._p.get_or_add_pPr().append(borders)
    paragraph.paragraph_format.space_after = Pt(15)
    return paragraph


def _header_fields(meta: EmailMetadata) -> list[str]:
    candidates = [
        f"From: {meta.sender or UNKNOWN}",
        f"To: {meta.to_display or UNKNOWN}",
        f"CC: {meta.cc_display}" if meta.cc_recipients else None,
        f"Date: {meta.date}" if meta.date else None,
        f"Attachments: {meta.attachment_names}" if meta.attachments else None,
    ]
    return [field for field in candidates if field]


def _add_lines(document, text: str) -> None:
    for line in text.replace("\r\n", "\n").split("\n"):
        _add_text_paragraph(document, line, size=11, space_after=4)


def render_docx(document: IntermediateDocument, title: str) -> bytes:
    """Render the document to .docx bytes."""
    doc = Document()
    section = doc.sections[0]
    section.page_width = PAGE_WIDTH
    section.page_height = PAGE_HEIGHT
    doc.core_properties.title = xml_safe(title)

    if document.is_email:
        meta = document.metadata
        _add_text_paragraph(doc, meta.subject or "Email", size=16, space_after=10, bold=True)
        for field in _header_fields(meta):
            _add_text_paragraph(doc, field, size=9, space_after=2, color=HEADER_COLOR)
        _add_rule(doc)
        _add_lines(doc, meta.body)
    else:
        _add_lines(doc, document.plain_text)

    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()
