"""
Intermediate document model.

The extractor produces an IntermediateDocument from the uploaded bytes and the
renderer consumes it to produce the output file. It is the only value passed
between the two stages and lives for a single request.

Models:
  AttachmentInfo        name + size of an email attachment
  EmailMetadata         structured header fields of an email-shaped source
  IntermediateDocument  plain text, HTML fragment, optional email metadata
"""

from typing import Literal, Optional

from pydantic import BaseModel


class AttachmentInfo(BaseModel):
    """A single email attachment as listed in the header block."""

    name: str
    size: int = 0           # bytes; 0 when the size could not be determined


class EmailMetadata(BaseModel):
    """
    Header fields of an email source (.msg / .eml).

    The body is carried here as well so renderers can lay out header and
    body without re-parsing the flattened plain_text.
    """

    kind: Literal["email"] = "email"
    subject: str
    sender: str
    recipients: list[str] = []
    cc_recipients: list[str] = []
    date: str = ""          # display string, empty when unknown
    attachments: list[AttachmentInfo] = []
    body: str = ""

    @property
    def to_display(self) -> str:
        return ", ".join(self.recipients)

    @property
    def cc_display(self) -> str:
        return ", ".join(self.cc_recipients)

    @property
    def attachment_names(self) -> str:
        return ", ".join(a.name for a in self.attachments)


class IntermediateDocument(BaseModel):
    """
    Normalized representation of an uploaded file.

    plain_text is always populated (empty only for a zero-byte upload).
    html_fragment is an HTML body fragment; sources without a richer
    representation get an escaped <pre> block of plain_text.
    metadata is set only for email-shaped sources.
    """

    plain_text: str
    html_fragment: str
    metadata: Optional[EmailMetadata] = None

    @property
    def is_email(self) -> bool:
        return self.metadata is not None and self.metadata.kind == "email"
