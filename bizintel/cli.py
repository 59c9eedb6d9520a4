#!/usr/bin/env python3
"""
Scrape a business website into a structured profile.

Usage:
    bizintel-scrape acme-limo.com
    bizintel-scrape https://acme-limo.com --mode deep_dive --output acme.json
    bizintel-scrape acme-limo.com --merge-into profiles/acme.json --owner-id owner-1

Exit codes: 0 success, 1 acquisition/extraction/store failure, 2 invalid input.
"""

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import PipelineSettings
from .llm.extraction_schemas import available_modes
from .llm.llm_client import LLMClient
from .services.profile_store import JsonFileProfileStore
from .services.website_intelligence import ERROR_VALIDATION, WebsiteIntelligenceService
from .utils.logger import configure_global_logging, get_logger

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2

console = Console(stderr=True)


def display_profile(profile: dict, title: str) -> None:
    """Summarize a profile on stderr; the JSON document goes to stdout."""
    table = Table(title=title, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    contact = profile.get("contact_info") or {}
    location = profile.get("location") or {}
    table.add_row("Business", profile.get("business_name") or "-")
    table.add_row("Industry", profile.get("industry") or "-")
    table.add_row("Phone", contact.get("phone") or "-")
    table.add_row("Email", contact.get("email") or "-")
    table.add_row("City", ", ".join(v for v in (location.get("city"), location.get("state")) if v) or "-")
    table.add_row("Services", str(len(profile.get("services") or [])))
    table.add_row("Assets", str(len(profile.get("assets") or [])))
    if "confidence" in profile:
        table.add_row("Confidence", f"{profile['confidence']:.2f}")
    if profile.get("missing_fields"):
        table.add_row("Missing", ", ".join(profile["missing_fields"]))
    console.print(table)


def write_output(document: dict, output: Path = None) -> None:
    text = json.dumps(document, indent=2)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        console.print(f"Saved to: {output}")
    else:
        print(text)


def exit_code_for(error_kind: str) -> int:
    return EXIT_INVALID if error_kind == ERROR_VALIDATION else EXIT_FAILED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Extract a structured business profile from a website")
    parser.add_argument("url", help="Business website URL (scheme optional)")
    parser.add_argument(
        "--mode",
        choices=available_modes(),
        default="flat",
        help="Extraction mode (default: flat)",
    )
    parser.add_argument(
        "--crawl-first",
        action="store_true",
        help="Run the multi-page crawl before single-page fetches",
    )
    parser.add_argument(
        "--merge-into",
        type=Path,
        help="Merge the extraction into this profile JSON file (created if missing)",
    )
    parser.add_argument(
        "--owner-id",
        type=str,
        help="Owner key for --merge-into (default: the file's owner_id, else 'local')",
    )
    parser.add_argument("--output", type=Path, help="Write the JSON result to a file instead of stdout")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (default: BIZINTEL_LOG_LEVEL or INFO)",
    )
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        settings = PipelineSettings.from_env()
    except ValueError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        return EXIT_INVALID

    log_level = args.log_level or settings.log_level
    configure_global_logging(log_level, phase="scrape")
    logger = get_logger("bizintel.cli", log_level=log_level, phase="scrape")

    store = JsonFileProfileStore(args.merge_into) if args.merge_into else None
    service = WebsiteIntelligenceService(
        oracle=LLMClient(model=settings.llm_model, logger=logger),
        store=store,
        settings=settings,
        logger=logger,
    )

    console.print(f"[bold]Scraping[/bold] {args.url} [dim](mode={args.mode})[/dim]")

    if store is not None:
        existing = store.get_profile(args.owner_id or "")
        owner_id = args.owner_id or (existing or {}).get("owner_id") or "local"
        with logger.time_operation("sync", url=args.url, owner=owner_id):
            response = service.sync_profile_sync(owner_id, args.url, mode=args.mode, crawl_first=args.crawl_first)
        document = response.to_dict()
        if not response.success:
            console.print(Panel(response.error or "Unknown error", title=f"Sync failed ({response.error_kind})", border_style="red"))
            write_output(document, args.output)
            return exit_code_for(response.error_kind)
        display_profile(document["profile"], "Merged profile (created)" if response.created else "Merged profile")
        write_output(document["profile"], args.output)
        return EXIT_OK

    with logger.time_operation("scrape", url=args.url, mode=args.mode):
        response = service.scrape_website_sync(args.url, mode=args.mode, crawl_first=args.crawl_first)
    document = response.to_dict()
    if not response.success:
        console.print(Panel(response.error or "Unknown error", title=f"Scrape failed ({response.error_kind})", border_style="red"))
        write_output(document, args.output)
        return exit_code_for(response.error_kind)

    if response.data.is_degraded:
        console.print(f"[yellow]Extraction degraded:[/yellow] {response.data.diagnostic}")
    display_profile(document["data"], "Extracted profile")
    write_output(document, args.output)

    summary = logger.generate_summary()
    if summary["warnings"]["total"]:
        console.print(f"[dim]{summary['warnings']['total']} warning(s) during run[/dim]")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
