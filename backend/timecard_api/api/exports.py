from io import BytesIO
from flask import Blueprint, request, send_file
from pydantic import ValidationError

from schemas import ExtractionResult
from workbook_export import default_filename, workbook_bytes
from .utils import api_response

exports_bp = Blueprint('exports', __name__, url_prefix='/api/exports')

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


@exports_bp.route('/workbook', methods=['POST'])
def export_workbook():
    """Download posted (possibly hand-edited) results as one workbook, one sheet per card."""
    payload = request.get_json(silent=True) or {}
    raw_results = payload.get('results')
    if not isinstance(raw_results, list) or not raw_results:
        return api_response(status_code=400, message="results must be a non-empty list", error="Bad Request")

    try:
        results = [ExtractionResult.from_wire(item) for item in raw_results if isinstance(item, dict)]
    except ValidationError as e:
        return api_response(status_code=400, message="Invalid result payload", error=str(e))

    return send_file(
        BytesIO(workbook_bytes(results)),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=default_filename()
    )
