"""
HTML output: wraps the document's HTML fragment in a standalone page.
"""

from app.models.document import IntermediateDocument
from app.services.text_helpers import escape_html

_STYLESHEET = """\
  body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; max-width: 800px; margin: 40px auto; padding: 20px; color: #222; line-height: 1.6; }
  .email-header { background: #f5f6fa; padding: 20px; border-radius: 8px; margin-bottom: 24px; }
  .email-header p { margin: 4px 0; font-size: 14px; color: #555; }
  .email-header .subject { font-size: 20px; font-weight: 600; color: #1a1a2e; margin-bottom: 8px; }
  pre { white-space: pre-wrap; word-wrap: break-word; }
  table { border-collapse: collapse; width: 100%; }
  th, td { border: 1px solid #ddd; padding: 8px 12px; text-align: left; }
  th { background: #f0f0f0; }"""


def render_html(document: IntermediateDocument, title: str) -> bytes:
    page = (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        f'<head><meta charset="utf-8"><title>{escape_html(title)}</title>\n'
        f"<style>\n{_STYLESHEET}\n</style>\n"
        "</head>\n"
        f"<body>{document.html_fragment}</body>\n"
        "</html>"
    )
    return page.encode("utf-8")
