"""
Time-card batch runner: reads card photos, reconstructs tables, writes a workbook.

Usage:
    python worker/run.py cards/*.jpg --out 勤怠.xlsx [--spreadsheet-id ID]

Environment variables:
    OPENAI_API_KEY - OpenAI API key
    SHEET_WEBAPP_URL - Spreadsheet web-app endpoint for --spreadsheet-id
    GUEST_DAILY_LIMIT - Guest extractions per day (default: 2)
    USAGE_FILE - Guest usage counter file (default: ~/.timecard_ocr_usage.json)
"""
import argparse
import logging
import mimetypes
import sys
from pathlib import Path
from typing import List, Optional, Sequence

# Load env before any other imports
from dotenv import load_dotenv
load_dotenv()

from batch import ImageInput, process_batch
from errors import TimecardError
from extractor import PIPELINE_VERSION, TimecardExtractor
from sheet_export import SheetExporter
from usage import JsonFileUsageStore, UsageIdentity, UsageTracker
from workbook_export import default_filename, workbook_bytes

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger('timecard_worker')

IMAGE_SUFFIXES = {'.jpg', '.jpeg', '.png', '.gif', '.webp', '.bmp', '.tif', '.tiff'}


def collect_images(paths: Sequence[str]) -> List[ImageInput]:
    """Expand files and directories into ImageInputs, sorted by name within directories."""
    images: List[ImageInput] = []
    for raw in paths:
        path = Path(raw)
        candidates = sorted(p for p in path.iterdir() if p.is_file()) if path.is_dir() else [path]
        for candidate in candidates:
            if candidate.suffix.lower() not in IMAGE_SUFFIXES:
                logger.debug(f"Skipping non-image file {candidate}")
                continue
            mime_type, _ = mimetypes.guess_type(candidate.name)
            images.append(ImageInput(
                data=candidate.read_bytes(),
                file_name=candidate.name,
                mime_type=mime_type,
            ))
    return images


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Extract attendance tables from time-card photos.")
    ap.add_argument("paths", nargs="+", help="Image files or directories of images")
    ap.add_argument("--out", default=None, help="Output .xlsx path (default: 勤怠データ_YYYYMMDD.xlsx)")
    ap.add_argument("--spreadsheet-id", default=None, help="Also export each card to this spreadsheet")
    ap.add_argument("--account", default=None, help="Account id; counts usage without the guest limit")
    ap.add_argument("--usage-file", default=None, help="Guest usage counter file")
    ap.add_argument("--verbose", action="store_true")
    return ap.parse_args(argv)


def _print_progress(index: int, total: int, phase: str) -> None:
    logger.info(f"{index} / {total} [{phase}]")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point."""
    args = _parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    logger.info(f"Time-card pipeline {PIPELINE_VERSION}")
    images = collect_images(args.paths)
    if not images:
        logger.error("No images found")
        return 2

    identity = UsageIdentity(key=args.account, is_guest=False) if args.account else UsageIdentity(key='guest')
    usage = UsageTracker(JsonFileUsageStore(args.usage_file))

    try:
        outcome = process_batch(
            images,
            extractor=TimecardExtractor(),
            exporter=SheetExporter() if args.spreadsheet_id else None,
            destination_id=args.spreadsheet_id,
            usage=usage,
            identity=identity,
            progress=_print_progress,
        )
    except TimecardError as e:
        logger.error(f"エラーが発生しました: {e}")
        return 1

    out_path = Path(args.out or default_filename())
    out_path.write_bytes(workbook_bytes(outcome.results))
    logger.info(outcome.message)
    logger.info(f"Workbook written to {out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
