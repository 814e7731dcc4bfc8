"""Command-line interface for digitizing tally sheets without the web UI.

Sessions are written to JSON files so they can be corrected in an editor
and committed afterwards.
"""

import argparse
import csv
import json
import sys
from pathlib import Path

from tally_ocr.commit.normalize import CommitError, InvalidBlockDateError
from tally_ocr.commit.records import ProductionRecord
from tally_ocr.ocr.tesseract_engine import OCRError
from tally_ocr.review.service import (
    CommitResult,
    RecordsNotFoundError,
    ReviewService,
)
from tally_ocr.session.models import CorrectionSession
from tally_ocr.storage.base import PersistenceError
from tally_ocr.utils.config import DEFAULT_CONFIG_PATH, load_config
from tally_ocr.utils.logger import get_logger, setup_logging
from tally_ocr.validation.reconciliation import find_discrepancies

logger = get_logger(__name__)

CLI_REVIEWER = "cli"

_CSV_COLUMNS = [
    "lab_id",
    "identificador_unico",
    "data_producao",
    "turno",
    "produto",
    "peso",
    "source",
]


def write_session(session: CorrectionSession, output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(session.to_dict(), indent=2, ensure_ascii=False))


def read_session(path: Path) -> CorrectionSession:
    return CorrectionSession.from_dict(json.loads(path.read_text()))


def digitize_sheet(
    service: ReviewService,
    image: Path,
    lab_id: str,
    output: Path | None = None,
) -> CorrectionSession:
    """Recognize a sheet image and optionally save the draft session.

    Args:
        service: Review service to run the pipeline with.
        image: Image or PDF file.
        lab_id: Lab the records will belong to.
        output: JSON file for the session, if it should be saved.

    Returns:
        The draft session.
    """
    session = service.digitize(CLI_REVIEWER, image, lab_id, image.name)
    if output:
        write_session(session, output)
        logger.info("Session written to %s", output)
    return session


def commit_session_file(
    service: ReviewService, path: Path, lab_id: str | None = None
) -> CommitResult:
    """Commit a session saved by ``digitize`` or ``edit``.

    Args:
        service: Review service holding the record store.
        path: Session JSON file.
        lab_id: Overrides the lab stored in the session.

    Returns:
        The committed records.
    """
    session = read_session(path)
    if lab_id:
        session.lab_id = lab_id
    service.put_session(CLI_REVIEWER, session)
    try:
        return service.commit(CLI_REVIEWER)
    finally:
        service.discard(CLI_REVIEWER)


def export_records(records: list[ProductionRecord], output: Path) -> int:
    """Write records to CSV in the wire column naming.

    Returns:
        Number of rows written.
    """
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_COLUMNS)
        writer.writeheader()
        for record in records:
            row = record.to_wire()
            row["source"] = row.pop("metadata")["source"]
            writer.writerow(row)
    return len(records)


def _print_session(session: CorrectionSession) -> None:
    print(f"\n{'=' * 50}")
    print(f"Session {session.id} ({session.source.value})")
    print(f"{'=' * 50}")
    for position, block in enumerate(session.blocks, start=1):
        print(f"Block {position} [{block.id}] date: {block.date or '(missing)'}")
        for row in block.shifts:
            values = ", ".join(c.raw_text or "-" for c in row.values)
            total = "" if row.declared_total is None else f" = {row.declared_total:g}"
            print(f"  {row.name}: {values}{total}")
    for d in find_discrepancies(session.blocks):
        print(
            f"WARNING: {d.shift_name} in block {d.block_id} sums to "
            f"{d.live_sum:g}, sheet says {d.declared_total:g}"
        )


def _build_service(args: argparse.Namespace) -> ReviewService:
    config = load_config(args.config)
    if args.db:
        config.storage.backend = "sqlite"
        config.storage.database_path = str(args.db)
    setup_logging(config.log_level)
    return ReviewService(config)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Production tally sheet digitizer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--db", type=Path, help="SQLite database for records")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    digitize_parser = subparsers.add_parser("digitize", help="OCR a tally sheet")
    digitize_parser.add_argument("image", type=Path, help="Sheet image or PDF")
    digitize_parser.add_argument("--lab", required=True, help="Lab identifier")
    digitize_parser.add_argument(
        "-o", "--output", type=Path, help="Write the draft session to this JSON file"
    )

    edit_parser = subparsers.add_parser("edit", help="Open stored records for a day")
    edit_parser.add_argument("date", help="Day to load (YYYY-MM-DD)")
    edit_parser.add_argument("--lab", required=True, help="Lab identifier")
    edit_parser.add_argument(
        "-o", "--output", type=Path, required=True, help="Session JSON file"
    )

    commit_parser = subparsers.add_parser("commit", help="Commit a session file")
    commit_parser.add_argument("session", type=Path, help="Session JSON file")
    commit_parser.add_argument("--lab", help="Override the session's lab")

    export_parser = subparsers.add_parser("export", help="Export records to CSV")
    export_parser.add_argument("--lab", required=True, help="Lab identifier")
    export_parser.add_argument("--start", help="First day (YYYY-MM-DD)")
    export_parser.add_argument("--end", help="Last day (YYYY-MM-DD)")
    export_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("producao.csv"),
        help="Output CSV file (default: producao.csv)",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    service = _build_service(args)

    try:
        if args.command == "digitize":
            if not args.image.exists():
                print(f"Error: {args.image} does not exist", file=sys.stderr)
                sys.exit(1)
            session = digitize_sheet(service, args.image, args.lab, args.output)
            _print_session(session)
        elif args.command == "edit":
            session = service.edit_existing(CLI_REVIEWER, args.lab, args.date)
            write_session(session, args.output)
            _print_session(session)
            print(f"Session written to {args.output}")
        elif args.command == "commit":
            if not args.session.exists():
                print(f"Error: {args.session} does not exist", file=sys.stderr)
                sys.exit(1)
            result = commit_session_file(service, args.session, args.lab)
            print(f"Committed {result.count} records from session {result.session_id}")
        elif args.command == "export":
            records = service.adapter.list_by_lab_and_date_range(
                args.lab, args.start, args.end
            )
            count = export_records(records, args.output)
            print(f"Exported {count} records to {args.output}")
    except InvalidBlockDateError as exc:
        for block in exc.blocks:
            print(
                f"Error: block {block.position} ({block.block_id}) has no valid "
                f"date: {block.date!r}",
                file=sys.stderr,
            )
        sys.exit(1)
    except (
        CommitError,
        OCRError,
        PersistenceError,
        RecordsNotFoundError,
        ValueError,
    ) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
