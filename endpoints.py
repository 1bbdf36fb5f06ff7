"""
Corn Doctor - Flask API

POST an image to /api/diagnose, get a structured diagnosis back; POST that
diagnosis to /api/report or /api/report/pdf to download it.
"""

import logging
from datetime import datetime, timezone

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from config import Settings
from encoder import encode_image
from engine import (
    ConfigurationError,
    DiagnosisAdapter,
    DiagnosisError,
    DiagnosisRecord,
    DiagnosisUnavailable,
    TransportError,
)
from report import render_json_report, render_pdf_report, report_filename

logger = logging.getLogger("corn-doctor.api")

ERROR_STATUS = {
    ConfigurationError: 500,
    TransportError: 502,
    DiagnosisUnavailable: 422,
}


def _error(message, status, kind=None):
    body = {'success': False, 'error': message}
    if kind:
        body['kind'] = kind
    return jsonify(body), status


def _record_from_request():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON diagnosis")
    # the UI may post the whole /api/diagnose response back
    payload = data.get('diagnosis', data)
    try:
        record = DiagnosisRecord.from_payload(payload)
    except TransportError as e:
        raise ValueError(e.detail) from e
    if record.is_error:
        raise ValueError("Cannot export a report for a failed diagnosis")
    return record


def _attachment(body, mimetype, filename):
    return Response(
        body,
        mimetype=mimetype,
        headers={
            'Content-Disposition': f'attachment; filename="{filename}"',
            'Content-Length': str(len(body)),
        },
    )


def create_app(adapter=None, settings=None):
    settings = settings or Settings.from_env()
    adapter = adapter or DiagnosisAdapter.from_settings(settings)

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = settings.max_content_length
    CORS(app)

    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'model': settings.gemini_model,
            'api_key_configured': settings.has_api_key,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        })

    @app.route('/api/diagnose', methods=['POST'])
    def diagnose():
        """Diagnose the uploaded corn leaf photo"""
        if 'image' not in request.files:
            return _error('No image file provided', 400)

        file = request.files['image']
        if file.filename == '':
            return _error('No image file selected', 400)

        image = encode_image(file)
        logger.info("Diagnosing %s (%s)", file.filename, image.mime_type)

        try:
            record = adapter.diagnose(image)
        except DiagnosisError as e:
            status = ERROR_STATUS.get(type(e), 500)
            return _error(e.message, status, e.kind)

        return jsonify({'success': True, 'diagnosis': record.to_dict()})

    @app.route('/api/report', methods=['POST'])
    def json_report():
        try:
            record = _record_from_request()
        except ValueError as e:
            return _error(str(e), 400)

        timestamp = datetime.now(timezone.utc)
        body = render_json_report(record, timestamp)
        return _attachment(body, 'application/json', report_filename(timestamp, 'json'))

    @app.route('/api/report/pdf', methods=['POST'])
    def pdf_report():
        try:
            record = _record_from_request()
        except ValueError as e:
            return _error(str(e), 400)

        timestamp = datetime.now(timezone.utc)
        body = render_pdf_report(record, timestamp)
        return _attachment(body, 'application/pdf', report_filename(timestamp, 'pdf'))

    @app.errorhandler(413)
    def too_large(e):
        return _error('Image is too large', 413)

    @app.errorhandler(Exception)
    def unexpected_error(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception("Unhandled error in request")
        return _error(f'Internal server error: {e}', 500)

    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    settings = Settings.from_env()
    logger.info("GEMINI_API_KEY set: %s", 'Yes' if settings.has_api_key else 'No')
    create_app(settings=settings).run(debug=False, host='0.0.0.0', port=5000)
