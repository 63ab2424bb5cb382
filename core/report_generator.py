"""
Report Generator
Renders HTML/JSON reports of a parsed .htaccess file and its access decision
using Jinja2 templates.
"""

import os
import json
from dataclasses import asdict, is_dataclass
from typing import List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.models import Directive, ContainerData, EvaluationReport
from parsers.htaccess_printer import HtaccessPrinter


REPORT_VERSION = "1.0"

BUILTIN_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>HtGate Report - {{ report.config_input.filename }}</title>
<style>
  body { font-family: 'Segoe UI', system-ui, sans-serif; background: #0a0e1a; color: #e2e8f0; margin: 0; }
  .container { max-width: 1100px; margin: 0 auto; padding: 2rem; }
  h1 { margin-bottom: .25rem; }
  .meta { color: #94a3b8; font-size: .9rem; }
  .card { background: #111827; border: 1px solid #1f2937; border-radius: 12px; padding: 1.25rem; margin: 1.25rem 0; }
  .verdict { font-size: 1.6rem; font-weight: 700; }
  .ALLOWED { color: #22c55e; } .DENIED { color: #ef4444; } .NOT_APPLICABLE { color: #eab308; }
  table { width: 100%; border-collapse: collapse; font-size: .9rem; }
  th, td { text-align: left; padding: .4rem .6rem; border-bottom: 1px solid #1f2937; }
  pre { background: #030712; padding: 1rem; border-radius: 8px; overflow-x: auto; }
</style>
</head>
<body>
<div class="container">
  <h1>HtGate Report</h1>
  <div class="meta">{{ report.config_input.path }} &middot; SHA-256 {{ report.config_input.file_hash[:16] }}&hellip; &middot; {{ report.generated_at }}</div>

  {% if report.decision %}
  <div class="card">
    <div class="verdict {{ report.decision.verdict }}">{{ report.decision.verdict }}{% if report.decision.status %} ({{ report.decision.status }}){% endif %}</div>
    <div class="meta">{{ report.session.method }} {{ report.session.uri }} from {{ report.session.client_ip }}</div>
    <p>{{ report.decision.reason }}</p>
  </div>
  {% endif %}

  <div class="card">
    <h2>Directives ({{ summary.directives }})</h2>
    <table>
      <tr><th>Line</th><th>Type</th><th>Name</th><th>Value</th></tr>
      {% for row in rows %}
      <tr><td>{{ row.line }}</td><td>{{ ("&nbsp;" * (row.depth * 2))|safe }}{{ row.type }}</td><td>{{ row.name or "" }}</td><td>{{ row.value or "" }}</td></tr>
      {% endfor %}
    </table>
  </div>

  {% if diagnostics %}
  <div class="card">
    <h2>Warnings ({{ diagnostics|length }})</h2>
    <ul>
    {% for diag in diagnostics %}<li>line {{ diag.line }}: {{ diag.message }}</li>{% endfor %}
    </ul>
  </div>
  {% endif %}

  <div class="card">
    <h2>Canonical form</h2>
    <pre>{{ canonical }}</pre>
  </div>
</div>
</body>
</html>
"""


def directive_to_dict(d: Directive) -> dict:
    """Plain-dict form of a directive, children nested."""
    data = None
    if isinstance(d.data, ContainerData):
        data = {
            "pattern": d.data.pattern,
            "negated": d.data.negated,
            "methods": d.data.methods,
        }
    elif is_dataclass(d.data):
        data = asdict(d.data)

    result = {
        "type": d.type,
        "line": d.line_number,
        "name": d.name,
        "value": d.value,
        "data": data,
    }
    if d.is_container:
        result["children"] = [directive_to_dict(c) for c in d.children]
    return result


class ReportGenerator:
    """Generates HTML and JSON reports."""

    def __init__(self, templates_dir: Optional[str] = None):
        self.templates_dir = templates_dir or os.path.join(
            os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "templates"
        )
        self.printer = HtaccessPrinter(indent="    ")

    def generate_html(self, report: EvaluationReport, output_path: str) -> str:
        """Write an HTML report and return its path."""
        html_content = self.render_html(report)

        os.makedirs(os.path.dirname(output_path) if os.path.dirname(output_path) else '.', exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(html_content)

        return output_path

    def generate_json(self, report: EvaluationReport, output_path: str) -> str:
        """Write a JSON report for programmatic use and return its path."""
        data = self.report_to_dict(report)

        os.makedirs(os.path.dirname(output_path) if os.path.dirname(output_path) else '.', exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, default=str)

        return output_path

    def render_html(self, report: EvaluationReport) -> str:
        """Render with templates/report.html when present, else the built-in template."""
        env = Environment(
            loader=FileSystemLoader(self.templates_dir),
            autoescape=select_autoescape(['html']),
        )
        if os.path.exists(os.path.join(self.templates_dir, 'report.html')):
            template = env.get_template('report.html')
        else:
            template = env.from_string(BUILTIN_TEMPLATE)
        return template.render(report=report, **self._template_context(report))

    def _template_context(self, report: EvaluationReport) -> dict:
        return {
            "summary": self._summary(report),
            "rows": self._flatten(report.parsed.directives),
            "diagnostics": report.parsed.diagnostics,
            "canonical": self.printer.print(report.parsed.directives),
        }

    def _flatten(self, directives: List[Directive], depth: int = 0) -> List[dict]:
        rows = []
        for d in directives:
            rows.append({
                "line": d.line_number,
                "type": d.type,
                "name": d.name if d.name is not None else (
                    d.data.pattern if isinstance(d.data, ContainerData) else None),
                "value": d.value if d.value is not None else (
                    d.data.methods if isinstance(d.data, ContainerData) else None),
                "depth": depth,
            })
            rows.extend(self._flatten(list(d.children), depth + 1))
        return rows

    def _summary(self, report: EvaluationReport) -> dict:
        parsed = report.parsed
        return {
            "directives": parsed.count(),
            "top_level": len(parsed.directives),
            "warnings": len(parsed.diagnostics),
            "lines": len(report.config_input.content.splitlines()),
        }

    def report_to_dict(self, report: EvaluationReport) -> dict:
        """Convert an EvaluationReport to a JSON-serializable dict."""
        ci = report.config_input
        data = {
            "htgate_version": REPORT_VERSION,
            "generated_at": report.generated_at,
            "file": {
                "path": ci.path,
                "filename": ci.filename,
                "hash_sha256": ci.file_hash,
                "size_bytes": ci.file_size,
            },
            "summary": self._summary(report),
            "directives": [directive_to_dict(d) for d in report.parsed.directives],
            "diagnostics": [asdict(diag) for diag in report.parsed.diagnostics],
            "canonical": self.printer.print(report.parsed.directives),
            "request": None,
            "decision": None,
        }

        if report.session is not None:
            data["request"] = {
                "client_ip": report.session.client_ip,
                "method": report.session.method,
                "uri": report.session.uri,
                "filename": report.session.filename,
                "content_type": report.session.content_type,
                "status": report.session.status,
                "response_headers": dict(report.session.response_headers),
            }
        if report.decision is not None:
            data["decision"] = asdict(report.decision)
        if report.brute_force is not None:
            data["brute_force"] = asdict(report.brute_force)
            data["brute_force"]["protects_request"] = report.brute_force_protected
            data["brute_force"]["client_whitelisted"] = report.brute_force_whitelisted
        if report.expires_seconds is not None:
            data["expires_seconds"] = report.expires_seconds

        return data
