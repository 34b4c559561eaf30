"""
Sequential batch processing of time-card images.

Images are processed one at a time so OCR rate limits are respected and
progress can be reported as ``i / N``. A failure on one image never stops the
others; only a batch where every image failed is an error.
"""
import logging
import traceback
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from errors import BatchFailedError, QuotaExceededError
from extractor import TimecardExtractor
from schemas import ExtractionResult
from sheet_export import SheetExporter
from usage import UsageIdentity, UsageTracker

logger = logging.getLogger('timecard_worker.batch')

PHASE_ANALYZING = 'analyzing'
PHASE_EXPORTING = 'exporting'

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class ImageInput:
    data: bytes
    file_name: Optional[str] = None
    mime_type: Optional[str] = None


@dataclass
class BatchOutcome:
    results: List[ExtractionResult] = field(default_factory=list)
    success_count: int = 0
    export_failure_count: int = 0
    export_enabled: bool = False
    quota_skipped_count: int = 0

    @property
    def message(self) -> str:
        message = self._summary()
        if self.quota_skipped_count:
            message += f"（利用回数制限のため{self.quota_skipped_count}枚は未処理）"
        return message

    def _summary(self) -> str:
        if self.export_enabled:
            if self.export_failure_count > 0:
                exported = self.success_count - self.export_failure_count
                return (
                    f"{self.success_count}枚中、{exported}枚の転記に成功しました。"
                    f"（{self.export_failure_count}枚失敗）"
                )
            return f"{self.success_count}枚のデータを抽出し、スプレッドシートへ転記しました！"
        return f"{self.success_count}枚の抽出が完了しました。"


def process_batch(
    images: Sequence[ImageInput],
    extractor: TimecardExtractor,
    exporter: Optional[SheetExporter] = None,
    destination_id: Optional[str] = None,
    usage: Optional[UsageTracker] = None,
    identity: Optional[UsageIdentity] = None,
    progress: Optional[ProgressCallback] = None,
) -> BatchOutcome:
    """
    Extract every image in order, exporting each success when a destination is set.

    Raises:
        ConfigurationError: before any OCR call when credentials are missing
        QuotaExceededError: the identity has no allowance left today; when the
            allowance runs out mid-batch the remaining images are skipped instead
        BatchFailedError: every image failed
    """
    if usage is not None and identity is not None:
        usage.check_quota(identity)
    extractor.check_configuration()

    export_enabled = bool(exporter is not None and destination_id)
    outcome = BatchOutcome(export_enabled=export_enabled)
    last_error: Optional[str] = None
    total = len(images)

    for index, image in enumerate(images, start=1):
        # Each success spends allowance, so a guest may run out mid-batch
        if index > 1 and usage is not None and identity is not None:
            try:
                usage.check_quota(identity)
            except QuotaExceededError as e:
                outcome.quota_skipped_count = total - index + 1
                logger.warning(
                    f"Daily limit reached for {identity.key} ({e.count}/{e.limit}); "
                    f"skipping {outcome.quota_skipped_count} remaining image(s)"
                )
                break

        if progress:
            progress(index, total, PHASE_ANALYZING)
        logger.info(f"Processing image {index}/{total}: {image.file_name}")

        try:
            result = extractor.extract(image.data, mime_type=image.mime_type, file_name=image.file_name)
        except Exception as e:
            last_error = str(e) or type(e).__name__
            logger.error(f"Failed to process image {index}/{total} ({image.file_name}): {type(e).__name__}: {e}")
            logger.debug(traceback.format_exc())
            outcome.results.append(ExtractionResult.failed(image.file_name, last_error))
            continue

        outcome.results.append(result)

        if export_enabled:
            if progress:
                progress(index, total, PHASE_EXPORTING)
            try:
                exporter.export(destination_id, result.entries, result.detected_name)
            except Exception as e:
                logger.error(f"Sheet export failed for image {index}/{total}: {e}")
                outcome.export_failure_count += 1

        outcome.success_count += 1
        if usage is not None and identity is not None:
            usage.record_success(identity)

    if total and outcome.success_count == 0:
        raise BatchFailedError(last_error or "すべての画像の解析に失敗しました。", results=outcome.results)

    logger.info(
        f"Batch finished: {outcome.success_count}/{total} extracted, "
        f"{outcome.export_failure_count} export failure(s)"
    )
    return outcome
