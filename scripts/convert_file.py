#!/usr/bin/env python3
"""
Dev helper: send a file to the local Document Converter backend.

POSTs the file as multipart/form-data to /api/convert and writes the
converted output next to the source file (or into --out-dir).

Usage
-----
# Convert an Outlook message to PDF, targeting localhost:8000
python scripts/convert_file.py mail.msg

# Choose the output format
python scripts/convert_file.py notes.eml --format docx

# Write the result elsewhere
python scripts/convert_file.py report.csv --format html --out-dir /tmp

# Target a different backend URL
python scripts/convert_file.py mail.msg --url http://staging.example.com

# Show what would be sent without sending it
python scripts/convert_file.py mail.msg --dry-run
"""

import argparse
import json
import mimetypes
import sys
import textwrap
from pathlib import Path
from urllib.parse import unquote

import httpx

TARGET_FORMATS = ["pdf", "docx", "txt", "html"]


def _print_error(response: httpx.Response) -> None:
    print(f"\n[FAIL] HTTP {response.status_code}", file=sys.stderr)
    try:
        print(json.dumps(response.json(), indent=2), file=sys.stderr)
    except ValueError:
        print(response.text, file=sys.stderr)


def _output_name(response: httpx.Response, source: Path, target_format: str) -> str:
    """Prefer the name the server computed; fall back to <stem>.<format>."""
    header = response.headers.get("X-Filename")
    if header:
        return Path(unquote(header)).name
    return f"{source.stem}.{target_format}"


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="convert_file.py",
        description="Convert a file with the Document Converter backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/convert_file.py mail.msg
              python scripts/convert_file.py notes.eml --format docx
              python scripts/convert_file.py data.json --format html --out-dir /tmp
        """),
    )
    parser.add_argument("file", metavar="PATH", help="File to convert")
    parser.add_argument(
        "--format",
        dest="target_format",
        default="pdf",
        choices=TARGET_FORMATS,
        help="Output format (default: pdf)",
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Backend base URL (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--out-dir",
        default=None,
        metavar="DIR",
        help="Directory for the converted file (default: next to the source)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the request summary without sending it.",
    )

    args = parser.parse_args()

    source = Path(args.file)
    if not source.exists():
        print(f"ERROR: File not found: {source}", file=sys.stderr)
        return 1

    content = source.read_bytes()
    content_type = mimetypes.guess_type(source.name)[0] or "application/octet-stream"
    endpoint = f"{args.url.rstrip('/')}/api/convert"

    print(f"Endpoint : {endpoint}")
    print(f"File     : {source} ({len(content):,} bytes, {content_type})")
    print(f"Format   : {args.target_format}")

    if args.dry_run:
        print("\n[DRY RUN] Nothing sent.")
        return 0

    try:
        response = httpx.post(
            endpoint,
            files={"file": (source.name, content, content_type)},
            data={"targetFormat": args.target_format},
            timeout=120,
        )
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the backend running? Start it with:\n"
            "  cd backend && uvicorn app.main:app --reload",
            file=sys.stderr,
        )
        return 1

    if response.status_code != 200:
        _print_error(response)
        return 1

    out_dir = Path(args.out_dir) if args.out_dir else source.parent
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / _output_name(response, source, args.target_format)
    out_path.write_bytes(response.content)

    print(f"\n[OK] HTTP 200, wrote {out_path} ({len(response.content):,} bytes, {response.headers.get('content-type')})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
