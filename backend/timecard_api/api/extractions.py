import logging
from flask import Blueprint, current_app, request
from werkzeug.utils import secure_filename

from batch import ImageInput, process_batch
from errors import BatchFailedError, ConfigurationError, QuotaExceededError
from usage import UsageTracker
from .utils import api_response
from ..services.usage_service import SqlUsageStore, resolve_identity

logger = logging.getLogger('timecard_api.extractions')

extractions_bp = Blueprint('extractions', __name__, url_prefix='/api')

ALLOWED_TYPES = {
    'image/jpeg',
    'image/jpg',
    'image/png',
    'image/gif',
    'image/webp',
    'image/bmp',
    'image/tiff',
}


def _usage_tracker() -> UsageTracker:
    return UsageTracker(SqlUsageStore(), daily_limit=current_app.config['GUEST_DAILY_LIMIT'])


def _batch_data(outcome_results, success_count, export_failure_count, quota_skipped_count=0):
    return {
        'results': [result.to_wire() for result in outcome_results],
        'success_count': success_count,
        'export_failure_count': export_failure_count,
        'quota_skipped_count': quota_skipped_count,
    }


@extractions_bp.route('/extractions', methods=['POST'])
def create_extractions():
    """Extract attendance tables from uploaded time-card photos, in upload order."""
    if 'files' not in request.files:
        return api_response(status_code=400, message="No files provided", error="Bad Request")

    files = [f for f in request.files.getlist('files') if f.filename]
    if not files:
        return api_response(status_code=400, message="No files selected", error="Bad Request")

    images = []
    for file in files:
        content_type = file.content_type or 'application/octet-stream'
        if content_type not in ALLOWED_TYPES:
            return api_response(
                status_code=400,
                message=f"Unsupported file type for {file.filename}. Upload image files only",
                error="Invalid file type"
            )
        images.append(ImageInput(
            data=file.read(),
            file_name=secure_filename(file.filename) or file.filename,
            mime_type=content_type,
        ))

    identity = resolve_identity(request)
    spreadsheet_id = (request.form.get('spreadsheet_id') or '').strip() or None

    try:
        outcome = process_batch(
            images,
            extractor=current_app.config['EXTRACTOR_FACTORY'](),
            exporter=current_app.config['SHEET_EXPORTER_FACTORY']() if spreadsheet_id else None,
            destination_id=spreadsheet_id,
            usage=_usage_tracker(),
            identity=identity,
        )
    except QuotaExceededError as e:
        return api_response(
            status_code=429,
            message=str(e),
            error="Quota exceeded",
            meta={'count': e.count, 'limit': e.limit}
        )
    except ConfigurationError as e:
        logger.error(f"Extraction service misconfigured: {e}")
        return api_response(status_code=500, message=str(e), error="Configuration error")
    except BatchFailedError as e:
        return api_response(
            status_code=422,
            message=f"エラーが発生しました: {e}",
            error="Extraction failed",
            data=_batch_data(e.results, 0, 0)
        )

    return api_response(
        data=_batch_data(
            outcome.results,
            outcome.success_count,
            outcome.export_failure_count,
            outcome.quota_skipped_count,
        ),
        message=outcome.message
    )


@extractions_bp.route('/usage', methods=['GET'])
def get_usage():
    """Today's usage of the calling identity."""
    identity = resolve_identity(request)
    tracker = _usage_tracker()
    return api_response(data={
        'count': tracker.store.get(identity),
        'limit': tracker.limit_for(identity),
        'remaining': tracker.remaining(identity),
    })
