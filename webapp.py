"""
HtGate Web Interface
Flask-based JSON API for parsing .htaccess files and evaluating access.
Run with: python webapp.py
Open: http://localhost:5000
"""

import os
import sys
import logging
from flask import Flask, request, jsonify

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.input_handler import InputHandler
from core.models import RequestSession, DirectiveType, CONTAINER_TAGS
from core.pipeline import run_pipeline
from core.report_generator import ReportGenerator

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = 1 * 1024 * 1024  # 1MB max upload

logger = logging.getLogger("htgate.webapp")


@app.route('/')
def index():
    """Describe the API."""
    return jsonify({
        "name": "HtGate",
        "endpoints": ["/api/directives", "/api/parse", "/api/evaluate"],
    })


@app.route('/api/directives', methods=['GET'])
def get_directives():
    """Return the directive kinds and container tags the parser understands."""
    kinds = sorted(
        value for key, value in vars(DirectiveType).items()
        if key.isupper() and isinstance(value, str)
    )
    return jsonify({"directives": kinds, "containers": sorted(CONTAINER_TAGS.values())})


def _read_upload():
    """Configuration text from an uploaded file, a form field or a JSON body."""
    if 'config_file' in request.files:
        file = request.files['config_file']
        if file.filename == '':
            raise ValueError("No file selected")
        try:
            return file.read().decode('utf-8'), file.filename
        except UnicodeDecodeError:
            raise ValueError("Uploaded file is not valid UTF-8")

    payload = request.get_json(silent=True) or request.form
    content = payload.get('content')
    if not content:
        raise ValueError("No configuration provided (upload 'config_file' or send 'content')")
    return content, payload.get('filename', '.htaccess')


def _request_param(name, default=None):
    payload = request.get_json(silent=True) or request.form
    value = payload.get(name, default)
    return value if value not in ('', None) else default


@app.route('/api/parse', methods=['POST'])
def parse():
    """Parse an uploaded configuration and return its directive tree."""
    try:
        content, filename = _read_upload()
        config_input = InputHandler().from_text(content, path=filename)
        report = run_pipeline(config_input)
        return jsonify(ReportGenerator().report_to_dict(report))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("parse failed")
        return jsonify({"error": str(e)}), 500


@app.route('/api/evaluate', methods=['POST'])
def evaluate():
    """Parse an uploaded configuration and decide access for a client."""
    try:
        content, filename = _read_upload()

        client_ip = _request_param('ip')
        if not client_ip:
            return jsonify({"error": "Missing client 'ip'"}), 400

        modules_str = _request_param('modules')
        modules = None
        if modules_str:
            modules = [m.strip() for m in modules_str.split(',') if m.strip()]

        session = RequestSession(
            client_ip=client_ip,
            method=_request_param('method', 'GET').upper(),
            uri=_request_param('uri', '/'),
            filename=_request_param('file'),
            content_type=_request_param('content_type'),
            authorization=_request_param('authorization'),
        )

        config_input = InputHandler().from_text(content, path=filename)
        report = run_pipeline(config_input, session=session, loaded_modules=modules)
        return jsonify(ReportGenerator().report_to_dict(report))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("evaluate failed")
        return jsonify({"error": str(e)}), 500


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    print("\n  HtGate Web API")
    print("  Open http://localhost:5000 in your browser\n")
    app.run(debug=True, port=5000)
