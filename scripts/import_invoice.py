#!/usr/bin/env python3
"""Import one invoice file and print the canonical record as JSON.

Usage:
    python scripts/import_invoice.py invoice.pdf
    python scripts/import_invoice.py invoice.pdf --model gemini-2.5-flash
    python scripts/import_invoice.py --chat "Invoice ACME for 3 hours consulting at 100"

Requirements:
    - INTAKE_GEMINI_API_KEY (or the key of the configured provider) for PDF
      and chat imports; JSON, text and HTML files are parsed locally
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from intake.extraction.base import IntakeError
from intake.ingest.service import IntakeService
from intake.normalize.canonical import normalize_company_profile
from intake.shared.config import Settings, get_settings
from intake.shared.diagnostics import DiagnosticLog
from intake.shared.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import an invoice or bid and print the canonical record")
    parser.add_argument("file", type=Path, nargs="?", help="JSON, PDF, text or HTML file to import")
    parser.add_argument("--chat", default=None, help="Describe an invoice in free text instead of importing a file")
    parser.add_argument("--model", default=None, help="Remote model tried first")
    parser.add_argument("--api-key", default=None, help="Remote API key overriding the configured one")
    parser.add_argument(
        "--default-company-name",
        default=None,
        help="Company name used when a chat request names none",
    )
    parser.add_argument(
        "--default-company-details",
        default=None,
        help="Company address block used when a chat request names none",
    )
    parser.add_argument(
        "--diagnostics",
        action="store_true",
        help="Print the import diagnostic log to stderr",
    )
    return parser


def main(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    """Run the importer.

    Args:
        argv: Command line arguments (sys.argv[1:] when None)
        settings: Application settings (loaded from the environment when None)

    Returns:
        Process exit code: 0 on success, 1 when the import failed, 2 on usage errors
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.file is None and args.chat is None:
        parser.print_usage(sys.stderr)
        print("error: give a FILE or --chat TEXT", file=sys.stderr)
        return 2

    settings = settings or get_settings()
    configure_logging(settings)
    diagnostics = DiagnosticLog(settings.diagnostics_max_entries)
    service = IntakeService(settings, diagnostics=diagnostics)

    try:
        if args.chat is not None:
            company = None
            if args.default_company_name is not None or args.default_company_details is not None:
                company = normalize_company_profile(
                    args.default_company_name or "", args.default_company_details or ""
                )
            result = service.import_chat(args.chat, api_key=args.api_key, preferred_model=args.model, company=company)
        else:
            data = args.file.read_bytes()
            result = service.import_file(
                args.file.name, data, api_key=args.api_key, preferred_model=args.model
            )
    except OSError as e:
        print(f"error: cannot read {args.file}: {e.strerror}", file=sys.stderr)
        return 1
    except IntakeError as e:
        logger.error(f"Import failed ({e.kind}): {e}")
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        if args.diagnostics:
            for entry in diagnostics.entries():
                print(entry, file=sys.stderr)

    logger.info(f"Imported record via {result.source} ({result.provider}, model={result.model})")
    print(json.dumps(result.record.to_payload(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
