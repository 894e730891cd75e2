"""
Diligence Report Generator

Renders a Verdict as an HTML due-diligence certificate and a structured
JSON report, and keeps an append-only JSONL trail of issued verdicts.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Template

from risk_models import RiskLevel, Verdict

logger = logging.getLogger(__name__)

REPORT_VERSION = "1.0"

LEVEL_COLORS = {
    RiskLevel.GREEN: "#27ae60",
    RiskLevel.YELLOW: "#f39c12",
    RiskLevel.RED: "#e74c3c",
    RiskLevel.BLACK: "#2c3e50",
}

LEVEL_RECOMMENDATIONS = {
    RiskLevel.GREEN: "Proceed with standard monitoring",
    RiskLevel.YELLOW: "Enhanced due diligence required before proceeding",
    RiskLevel.RED: "Do not proceed without compliance approval",
    RiskLevel.BLACK: "DO NOT TRANSACT - escalate to compliance immediately",
}


class ReportValidationError(Exception):
    """Raised when a verdict cannot be rendered"""
    pass


class ReportValidator:
    """Validates a verdict before report generation"""

    def validate(self, verdict: Verdict) -> Dict[str, Any]:
        """Check a verdict for missing or inconsistent fields

        Returns:
            Validation result with 'valid', 'errors', 'warnings' keys
        """
        errors = []
        warnings = []

        if not verdict.case_id:
            errors.append("Missing required field: case_id")
        if not 0 <= verdict.score <= 100:
            errors.append(f"Score out of range: {verdict.score}")
        for i, finding in enumerate(verdict.findings):
            if not finding.candidate.label:
                errors.append(f"Finding {i+1} has empty matched name")

        if not verdict.checked_sources:
            warnings.append("No sources were checked")
        for source in verdict.unavailable_sources:
            warnings.append(f"⚠️ SOURCE UNAVAILABLE: {source} - result may be incomplete")

        is_valid = len(errors) == 0
        if not is_valid:
            logger.error(f"Report validation failed: {errors}")
        if warnings:
            logger.warning(f"Report validation warnings: {warnings}")

        return {
            'valid': is_valid,
            'errors': errors,
            'warnings': warnings
        }


HTML_TEMPLATE = Template("""
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Due Diligence Report - {{ verdict.case_id }}</title>
    <style>
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body {
            font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;
            line-height: 1.6;
            color: #333;
            max-width: 210mm;
            margin: 0 auto;
            padding: 20mm;
            background: #f5f5f5;
        }
        .report-container { background: white; padding: 40px; box-shadow: 0 0 20px rgba(0,0,0,0.1); }
        .header { border-bottom: 3px solid #2c3e50; padding-bottom: 20px; margin-bottom: 30px; }
        .header h1 { color: #2c3e50; font-size: 24px; margin-bottom: 10px; }
        .header .subtitle { color: #7f8c8d; font-size: 14px; }
        .status-badge {
            display: inline-block;
            padding: 8px 16px;
            border-radius: 4px;
            font-weight: bold;
            margin: 20px 0;
            color: white;
            background: {{ color }};
        }
        .section { margin: 30px 0; }
        .section h2 {
            color: #34495e;
            font-size: 18px;
            border-bottom: 2px solid #ecf0f1;
            padding-bottom: 10px;
            margin-bottom: 15px;
        }
        .info-grid { display: grid; grid-template-columns: 200px 1fr; gap: 10px; margin: 15px 0; }
        .info-label { font-weight: bold; color: #7f8c8d; }
        ul.flags li { margin: 4px 0 4px 20px; }
        table { width: 100%; border-collapse: collapse; font-size: 13px; }
        th, td { border: 1px solid #ecf0f1; padding: 6px 8px; text-align: left; }
        th { background: #ecf0f1; }
        .warning { background: #fdf2e9; border-left: 4px solid #e67e22; padding: 10px; margin: 10px 0; }
        .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #ecf0f1; font-size: 12px; color: #95a5a6; }
    </style>
</head>
<body>
    <div class="report-container">
        <div class="header">
            <h1>Trade Due Diligence Report</h1>
            <div class="subtitle">Case {{ verdict.case_id }} &middot; issued {{ verdict.issued_at }}</div>
        </div>

        <div class="status-badge">{{ verdict.level.name }} &middot; {{ verdict.score }}/100</div>
        <p><strong>Recommendation:</strong> {{ recommendation }}</p>

        {% for warning in warnings %}
        <div class="warning">{{ warning }}</div>
        {% endfor %}

        <div class="section">
            <h2>Parties Screened</h2>
            <table>
                <tr><th>Name</th><th>Type</th><th>Role</th><th>Country</th></tr>
                {% for entity in verdict.entities %}
                <tr>
                    <td>{{ entity.display_name }}</td>
                    <td>{{ entity.kind.value }}</td>
                    <td>{{ entity.role }}</td>
                    <td>{{ entity.country or '-' }}</td>
                </tr>
                {% endfor %}
            </table>
        </div>

        {% if verdict.red_flags %}
        <div class="section">
            <h2>Red Flags</h2>
            <ul class="flags">
                {% for flag in verdict.red_flags %}<li>{{ flag }}</li>{% endfor %}
            </ul>
        </div>
        {% endif %}

        {% if verdict.positive_signals %}
        <div class="section">
            <h2>Positive Signals</h2>
            <ul class="flags">
                {% for signal in verdict.positive_signals %}<li>{{ signal }}</li>{% endfor %}
            </ul>
        </div>
        {% endif %}

        {% if verdict.findings %}
        <div class="section">
            <h2>Findings</h2>
            <table>
                <tr><th>Party</th><th>Matched Name</th><th>Source</th><th>Score</th><th>Severity</th><th>Tags</th></tr>
                {% for f in verdict.findings %}
                <tr>
                    <td>{{ f.entity.display_name }}</td>
                    <td>{{ f.candidate.label }}</td>
                    <td>{{ f.provider }}</td>
                    <td>{{ '%.0f' % (f.match_score * 100) }}%</td>
                    <td>{{ f.severity.value }}</td>
                    <td>{{ f.tags | map(attribute='value') | sort | join(', ') }}</td>
                </tr>
                {% endfor %}
            </table>
        </div>
        {% endif %}

        {% if verdict.jurisdictions %}
        <div class="section">
            <h2>Jurisdictions</h2>
            <table>
                <tr><th>Country</th><th>Tier</th></tr>
                {% for j in verdict.jurisdictions %}
                <tr><td>{{ j.country }}</td><td>{{ j.tier }}</td></tr>
                {% endfor %}
            </table>
        </div>
        {% endif %}

        <div class="section">
            <h2>Sources</h2>
            <div class="info-grid">
                <div class="info-label">Checked:</div>
                <div>{{ verdict.checked_sources | join(', ') or 'None' }}</div>
                <div class="info-label">Unavailable:</div>
                <div>{{ verdict.unavailable_sources | join(', ') or 'None' }}</div>
            </div>
        </div>

        <div class="footer">
            <p><strong>Automatically generated document</strong></p>
            <p>Generated: {{ generated_at }} &middot; report version {{ report_version }}</p>
            <p>This report reflects the sources available at the time of screening. Sanctions lists change frequently.</p>
        </div>
    </div>
</body>
</html>
""")


class ReportGenerator:
    """Writes HTML and JSON reports for a verdict"""

    def __init__(self, output_dir: Path = Path("reports"),
                 include_audit_trail: bool = True,
                 validate_before_generate: bool = True):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.validator = ReportValidator()
        self.validate_before_generate = validate_before_generate
        self.audit_trail = AuditTrailManager(self.output_dir / "audit_log") if include_audit_trail else None

    def _check(self, verdict: Verdict, skip_validation: bool) -> List[str]:
        if not self.validate_before_generate or skip_validation:
            return []
        validation = self.validator.validate(verdict)
        if not validation['valid']:
            raise ReportValidationError(f"Report validation failed: {validation['errors']}")
        return validation['warnings']

    def _filename(self, verdict: Verdict, extension: str) -> Path:
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        safe_id = "".join(c for c in verdict.case_id if c.isalnum() or c in ('-', '_')).strip()
        return self.output_dir / f"diligence_{safe_id}_{timestamp}.{extension}"

    def generate_html_report(self, verdict: Verdict, skip_validation: bool = False) -> str:
        """Render the HTML certificate and return its path

        Raises:
            ReportValidationError: If validation fails and not skipped
        """
        warnings = self._check(verdict, skip_validation)
        html_content = HTML_TEMPLATE.render(
            verdict=verdict,
            warnings=warnings,
            color=LEVEL_COLORS[verdict.level],
            recommendation=LEVEL_RECOMMENDATIONS[verdict.level],
            generated_at=datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            report_version=REPORT_VERSION,
        )

        filepath = self._filename(verdict, "html")
        with open(filepath, 'w', encoding='utf-8') as f:
            f.write(html_content)

        logger.info(f"✓ HTML report generated: {filepath}")
        return str(filepath)

    def generate_json_report(self, verdict: Verdict, skip_validation: bool = False) -> str:
        """Write the verdict plus report metadata as JSON and return its path"""
        self._check(verdict, skip_validation)
        report_data = verdict.to_dict()
        report_data['recommendation'] = LEVEL_RECOMMENDATIONS[verdict.level]
        report_data['reportMetadata'] = {
            'generatedAt': datetime.now().isoformat(),
            'reportVersion': REPORT_VERSION,
        }

        filepath = self._filename(verdict, "json")
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(report_data, f, indent=2, ensure_ascii=False)

        logger.info(f"✓ JSON report generated: {filepath}")
        return str(filepath)

    def generate(self, verdict: Verdict, html: bool = True) -> List[str]:
        """JSON report, HTML report when enabled, and an audit trail entry"""
        paths = [self.generate_json_report(verdict)]
        if html:
            paths.append(self.generate_html_report(verdict, skip_validation=True))
        if self.audit_trail:
            self.audit_trail.log_verdict(verdict)
        return paths


class AuditTrailManager:
    """Append-only JSONL trail of issued verdicts"""

    def __init__(self, audit_dir: Path = Path("reports/audit_log")):
        self.audit_dir = Path(audit_dir)
        self.audit_dir.mkdir(parents=True, exist_ok=True)
        self.audit_file = self.audit_dir / "diligence_audit.jsonl"

    def log_verdict(self, verdict: Verdict, config_snapshot: Optional[Dict[str, Any]] = None) -> str:
        """Append one verdict summary and return its case id"""
        entry = {
            "case_id": verdict.case_id,
            "timestamp": datetime.now().isoformat(),
            "issued_at": verdict.issued_at,
            "parties": [e.display_name for e in verdict.entities],
            "result": {
                "risk_level": verdict.level.name,
                "risk_score": verdict.score,
                "red_flag_count": len(verdict.red_flags),
                "finding_count": len(verdict.findings),
            },
            "sources_checked": list(verdict.checked_sources),
            "sources_unavailable": list(verdict.unavailable_sources),
            "config": config_snapshot
        }

        with open(self.audit_file, 'a', encoding='utf-8') as f:
            f.write(json.dumps(entry, ensure_ascii=False) + '\n')

        logger.info(f"Audit trail entry: {verdict.case_id}")
        return verdict.case_id

    def _entries(self):
        if not self.audit_file.exists():
            return
        with open(self.audit_file, 'r', encoding='utf-8') as f:
            for line in f:
                if line.strip():
                    yield json.loads(line)

    def get_verdict_by_case_id(self, case_id: str) -> Optional[Dict[str, Any]]:
        """Most recent trail entry for a case, or None"""
        found = None
        for entry in self._entries():
            if entry.get('case_id') == case_id:
                found = entry
        return found

    def get_verdicts_by_date_range(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        return [
            entry for entry in self._entries()
            if start <= datetime.fromisoformat(entry['timestamp']) <= end
        ]
