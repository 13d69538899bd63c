"""CLI entry point for OfferIntel."""

from __future__ import annotations

import argparse
import json
from datetime import datetime
from pathlib import Path

from offerintel import __version__, logger
from offerintel.analysis import DocumentAnalyzer
from offerintel.backends import OpenAIVisionModel
from offerintel.classifier import classify, relevance_score
from offerintel.conditions import FulfillmentNoticeExtractor
from offerintel.dependencies import ensure_cli_dependencies_for_analyze, ensure_cli_dependencies_for_classify
from offerintel.exceptions import PackageError
from offerintel.extractor import build_orchestrator
from offerintel.logging import configure_logging
from offerintel.offers import OfferStateMachine
from offerintel.pdf_text import extract_text
from offerintel.repository import InMemoryOfferRepository
from offerintel.settings import Settings, get_settings
from offerintel.typing.enums import VisionBackendType
from offerintel.typing.models import Document
from offerintel.visual import VisualValidator


def _aware_datetime(value: str) -> datetime:
    """Parse an ISO-8601 timestamp carrying a UTC offset.

    Raises:
        argparse.ArgumentTypeError: If the value is not ISO-8601 or has no offset.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 timestamp: {value}") from exc  # noqa: TRY003
    if parsed.tzinfo is None:
        raise argparse.ArgumentTypeError("--now must include a UTC offset")  # noqa: TRY003
    return parsed


def build_parser() -> argparse.ArgumentParser:
    """Create the command-line parser.

    Returns:
        argparse.ArgumentParser: The configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="offerintel")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command")

    classify_parser = subparsers.add_parser("classify", help="Detect whether a PDF is an OREA form")
    classify_parser.add_argument("--input", required=True, type=Path, dest="input_path")

    analyze_parser = subparsers.add_parser("analyze", help="Extract and validate an offer PDF")
    analyze_parser.add_argument("--input", required=True, type=Path, dest="input_path")
    analyze_parser.add_argument(
        "--output",
        type=Path,
        default=Path("results/analysis.json"),
        dest="output_path",
    )
    analyze_parser.add_argument("--visual", action="store_true", help="Run page-level visual validation")
    analyze_parser.add_argument("--storage-key", default=None, dest="storage_key")

    expire_parser = subparsers.add_parser("expire", help="Expire overdue offers in a JSON state file")
    expire_parser.add_argument("--state", required=True, type=Path, dest="state_path")
    expire_parser.add_argument("--now", type=_aware_datetime, default=None)

    return parser


def _load_document(path: Path, storage_key: str | None = None) -> Document:
    return Document(content=path.read_bytes(), filename=path.name, storage_key=storage_key)


def _run_classify(args: argparse.Namespace) -> dict[str, object]:
    document = _load_document(args.input_path)
    text, page_count = extract_text(document)
    detection = classify(text)
    return {
        "filename": document.filename,
        "page_count": page_count,
        "detection": detection.model_dump(mode="json"),
        "relevance_score": relevance_score(
            filename=document.filename,
            text=text,
            page_count=page_count,
            detection=detection,
        ),
    }


def _run_analyze(args: argparse.Namespace, settings: Settings) -> Path:
    model = OpenAIVisionModel(settings) if settings.openai_api_key else None
    orchestrator = build_orchestrator(settings, model=model)
    validator = VisualValidator(model, settings) if args.visual and model is not None else None
    if args.visual and validator is None:
        logger.warning("Visual validation requested without a vision model", extra={"command": "analyze"})

    analyzer = DocumentAnalyzer(
        orchestrator,
        settings,
        validator=validator,
        fulfillment_extractor=FulfillmentNoticeExtractor(model) if model is not None else None,
    )
    analysis = analyzer.analyze(_load_document(args.input_path, args.storage_key))
    args.output_path.parent.mkdir(parents=True, exist_ok=True)
    args.output_path.write_text(analysis.model_dump_json(indent=2), encoding="utf-8")
    return args.output_path


def _run_expire(args: argparse.Namespace, settings: Settings) -> list[str]:
    repository = InMemoryOfferRepository.load(args.state_path)
    expired = OfferStateMachine(repository, settings).expire_due_offers(args.now)
    repository.dump(args.state_path)
    return [offer.id for offer in expired]


def main(argv: list[str] | None = None) -> int:
    """Run the CLI.

    Args:
        argv (list[str] | None): Arguments, defaults to `sys.argv[1:]`.

    Returns:
        int: Exit code (0 for success, 1 for error, 130 when interrupted).
    """
    settings = get_settings()
    configure_logging(settings=settings)

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "classify":
            ensure_cli_dependencies_for_classify()
            print(json.dumps(_run_classify(args), indent=2))  # noqa: T201
        elif args.command == "analyze":
            ensure_cli_dependencies_for_analyze(needs_model=settings.vision_backend == VisionBackendType.MODEL)
            output_path = _run_analyze(args, settings)
            logger.info("Analysis completed", extra={"output_path": str(output_path)})
        else:
            expired = _run_expire(args, settings)
            logger.info("Expiry completed", extra={"state": str(args.state_path), "expired": expired})
    except PackageError:
        logger.exception("Command failed", extra={"command": args.command})
        return 1
    except KeyboardInterrupt:
        logger.info("Command aborted by user", extra={"command": args.command})
        return 130
    except Exception:
        logger.exception("Unexpected error", extra={"command": args.command})
        return 1
    finally:
        settings.close_http_client()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
