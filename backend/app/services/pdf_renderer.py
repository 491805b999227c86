"""
PDF output (reportlab).

A4 pages with 50pt margins. Email documents get a shaded header panel
(subject, From/To/CC/Date/Attachments), a horizontal rule and then the body;
anything else is rendered as a single reflowed text flow.

Text is drawn with a TrueType font so non-Latin scripts render: the font
configured via PDF_FONT_PATH / PDF_BOLD_FONT_PATH, else DejaVu Sans when it
is installed, else reportlab's bundled Vera.
"""

import io
import logging
import os
from functools import lru_cache
from html import escape

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app import config
from app.models.document import EmailMetadata, IntermediateDocument
from app.services.text_helpers import UNKNOWN, xml_safe

logger = logging.getLogger(__name__)

PAGE_SIZE = A4
MARGIN = 50
CONTENT_WIDTH = PAGE_SIZE[0] - 2 * MARGIN

FONT_NAME = "DocumentSans"
BOLD_FONT_NAME = "DocumentSans-Bold"

# (regular, bold) pairs searched in order when no font is configured
_SYSTEM_FONTS = [
    ("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf", "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
    ("/usr/share/fonts/TTF/DejaVuSans.ttf", "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf"),
    ("/usr/share/fonts/dejavu/DejaVuSans.ttf", "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf"),
    ("/Library/Fonts/DejaVuSans.ttf", "/Library/Fonts/DejaVuSans-Bold.ttf"),
]
# Shipped inside the reportlab package, resolved through its font search path
_BUNDLED_FONTS = ("Vera.ttf", "VeraBd.ttf")

PANEL_COLOR = HexColor("#f5f6fa")
SUBJECT_COLOR = HexColor("#1a1a2e")
HEADER_COLOR = HexColor("#666666")
RULE_COLOR = HexColor("#dddddd")
BODY_COLOR = HexColor("#222222")

# Longest text placed in one header panel row (about eight lines at 9pt)
HEADER_ROW_CHARS = 600


def _resolve_font_paths() -> tuple[str, str]:
    if config.PDF_FONT_PATH:
        return config.PDF_FONT_PATH, config.PDF_BOLD_FONT_PATH or config.PDF_FONT_PATH
    for regular, bold in _SYSTEM_FONTS:
        if os.path.exists(regular):
            return regular, bold if os.path.exists(bold) else regular
    logger.warning(
        "No PDF_FONT_PATH set and DejaVu Sans not found; falling back to Vera, "
        "characters outside Latin-1 will not render in PDF output"
    )
    return _BUNDLED_FONTS


@lru_cache(maxsize=1)
def register_fonts() -> tuple[str, str]:
    """Register the body and bold fonts once per process; returns their names."""
    regular, bold = _resolve_font_paths()
    pdfmetrics.registerFont(TTFont(FONT_NAME, regular))
    pdfmetrics.registerFont(TTFont(BOLD_FONT_NAME, bold))
    logger.info(f"PDF fonts registered: {regular}, {bold}")
    return FONT_NAME, BOLD_FONT_NAME


def _styles() -> dict[str, ParagraphStyle]:
    regular, bold = register_fonts()
    return {
        "subject": ParagraphStyle(
            "EmailSubject", fontName=bold, fontSize=16, leading=20,
            textColor=SUBJECT_COLOR, spaceAfter=6,
        ),
        "header": ParagraphStyle(
            "EmailHeader", fontName=regular, fontSize=9, leading=12,
            textColor=HEADER_COLOR, spaceAfter=2,
        ),
        # 10pt text with 3pt of extra line gap
        "body": ParagraphStyle(
            "Body", fontName=regular, fontSize=10, leading=13,
            textColor=BODY_COLOR,
        ),
    }


def _markup(text: str) -> str:
    """Escape text for reportlab's paragraph mini-markup."""
    return escape(xml_safe(text).replace("\t", "    "), quote=False)


def _text_flow(text: str, style: ParagraphStyle) -> list:
    """One paragraph per source line; blank lines become vertical space."""
    flow = []
    for line in text.replace("\r\n", "\n").split("\n"):
        if line.strip():
            flow.append(Paragraph(_markup(line), style))
        else:
            flow.append(Spacer(1, style.leading))
    return flow


def _chunks(text: str, limit: int = HEADER_ROW_CHARS) -> list[str]:
    """
    Split text into pieces of at most limit characters.

    Cuts after the last ", " inside the limit when there is one, so address
    and attachment lists break between entries.
    """
    pieces = []
    while len(text) > limit:
        cut = text.rfind(", ", 0, limit)
        cut = cut + 1 if cut > 0 else limit
        pieces.append(text[:cut])
        text = text[cut:].lstrip()
    pieces.append(text)
    return pieces


def _header_panel(meta: EmailMetadata, styles: dict[str, ParagraphStyle]) -> Table:
    lines = [
        f"From: {meta.sender}",
        f"To: {meta.to_display or UNKNOWN}",
    ]
    if meta.cc_recipients:
        lines.append(f"CC: {meta.cc_display}")
    if meta.date:
        lines.append(f"Date: {meta.date}")
    if meta.attachments:
        lines.append(f"Attachments: {meta.attachment_names}")

    # Table rows never split across pages, so long values are spread over several rows
    rows = [
        [Paragraph(_markup(chunk), styles["subject"])]
        for chunk in _chunks(meta.subject or "Email")
    ]
    rows.extend(
        [Paragraph(_markup(chunk), styles["header"])]
        for line in lines
        for chunk in _chunks(line)
    )

    style = TableStyle([
        ("BACKGROUND", (0, 0), (-1, -1), PANEL_COLOR),
        ("LEFTPADDING", (0, 0), (-1, -1), 15),
        ("RIGHTPADDING", (0, 0), (-1, -1), 15),
        ("TOPPADDING", (0, 0), (-1, -1), 1),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 1),
        ("TOPPADDING", (0, 0), (-1, 0), 10),
        ("BOTTOMPADDING", (0, -1), (-1, -1), 10),
    ])
    return Table(rows, colWidths=[CONTENT_WIDTH], style=style, cornerRadii=[6, 6, 6, 6])


def render_pdf(document: IntermediateDocument, title: str) -> bytes:
    """Render the document to PDF bytes."""
    styles = _styles()

    story: list = []
    if document.is_email:
        meta = document.metadata
        story.append(_header_panel(meta, styles))
        story.append(Spacer(1, 10))
        story.append(HRFlowable(width="100%", thickness=0.5, color=RULE_COLOR, spaceAfter=10))
        story.extend(_text_flow(meta.body, styles["body"]))
    else:
        story.extend(_text_flow(document.plain_text, styles["body"]))

    buf = io.BytesIO()
    pdf = SimpleDocTemplate(
        buf,
        pagesize=PAGE_SIZE,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=MARGIN,
        title=title,
    )
    pdf.build(story)
    return buf.getvalue()
