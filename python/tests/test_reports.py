"""
Tests for report generation, the verdict audit trail and the audit logger
"""

import json
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from audit_logger import AuditLogger
from providers import MalformedProviderResponse, ProviderUnavailable
from report_generator import (
    AuditTrailManager, ReportGenerator, ReportValidationError, ReportValidator,
)
from risk_models import (
    Candidate, Entity, EntityKind, Finding, FlagKind, RiskLevel, Severity, Verdict,
)


def make_verdict(case_id="CASE-42", level=RiskLevel.BLACK, score=10, unavailable=()):
    entity = Entity(id="E1", display_name="Petrov Shipping LLC", normalized_name="petrov shipping llc",
                    kind=EntityKind.COMPANY, role="Seller", country="Russia")
    finding = Finding(
        entity=entity,
        provider="opensanctions",
        candidate=Candidate(label="PETROV SHIPPING LLC", confidence=0.97,
                            tags=frozenset({FlagKind.SANCTIONS}), datasets=("us_ofac_sdn",)),
        match_score=1.0,
        severity=Severity.CRITICAL,
        tags=frozenset({FlagKind.SANCTIONS}),
    )
    return Verdict(
        case_id=case_id,
        level=level,
        score=score,
        red_flags=("🚨 Petrov Shipping LLC: SANCTIONS MATCH",),
        positive_signals=("✓ IBAN validated: GB bank account",),
        checked_sources=("OpenSanctions", "Jurisdiction Risk"),
        unavailable_sources=tuple(unavailable),
        findings=(finding,),
        entities=(entity,),
        jurisdictions=({'country': 'Russia', 'tier': 'standard', 'sanctioned': True},),
    )


# ============================================
# VALIDATION
# ============================================

class TestReportValidator:

    def test_valid_verdict(self):
        result = ReportValidator().validate(make_verdict())
        assert result['valid']
        assert result['warnings'] == []

    def test_unavailable_sources_warn(self):
        result = ReportValidator().validate(make_verdict(unavailable=("SAM.gov Exclusions",)))
        assert result['valid']
        assert any("SAM.gov Exclusions" in w for w in result['warnings'])

    def test_missing_case_id(self):
        result = ReportValidator().validate(make_verdict(case_id=""))
        assert not result['valid']


# ============================================
# GENERATION
# ============================================

class TestReportGenerator:

    def test_generate_writes_json_html_and_trail(self, tmp_path):
        generator = ReportGenerator(output_dir=tmp_path)
        paths = generator.generate(make_verdict())

        assert len(paths) == 2
        json_path, html_path = (Path(p) for p in paths)
        assert json_path.name.startswith("diligence_CASE-42_")

        report = json.loads(json_path.read_text(encoding='utf-8'))
        assert report['riskLevel'] == 'BLACK'
        assert report['recommendation'].startswith("DO NOT TRANSACT")
        assert report['reportMetadata']['reportVersion'] == "1.0"

        html = html_path.read_text(encoding='utf-8')
        assert "CASE-42" in html
        assert "PETROV SHIPPING LLC" in html
        assert "#2c3e50" in html

        trail = AuditTrailManager(tmp_path / "audit_log")
        assert trail.get_verdict_by_case_id("CASE-42")['result']['risk_level'] == 'BLACK'

    def test_json_only(self, tmp_path):
        generator = ReportGenerator(output_dir=tmp_path, include_audit_trail=False)
        paths = generator.generate(make_verdict(level=RiskLevel.GREEN, score=100), html=False)
        assert len(paths) == 1
        assert paths[0].endswith(".json")
        assert not (tmp_path / "audit_log").exists()

    def test_unsafe_case_id_in_filename(self, tmp_path):
        generator = ReportGenerator(output_dir=tmp_path, include_audit_trail=False)
        path = generator.generate_json_report(make_verdict(case_id="../../etc/passwd"))
        assert Path(path).parent == tmp_path
        assert "etcpasswd" in Path(path).name

    def test_invalid_verdict_rejected(self, tmp_path):
        generator = ReportGenerator(output_dir=tmp_path)
        with pytest.raises(ReportValidationError):
            generator.generate_json_report(make_verdict(score=150))

    def test_validation_can_be_skipped(self, tmp_path):
        generator = ReportGenerator(output_dir=tmp_path, include_audit_trail=False)
        assert Path(generator.generate_json_report(make_verdict(case_id=""), skip_validation=True)).exists()


class TestAuditTrailManager:

    def test_latest_entry_wins(self, tmp_path):
        trail = AuditTrailManager(tmp_path)
        trail.log_verdict(make_verdict(level=RiskLevel.RED, score=40))
        trail.log_verdict(make_verdict(level=RiskLevel.BLACK, score=10), config_snapshot={'version': 1})
        entry = trail.get_verdict_by_case_id("CASE-42")
        assert entry['result']['risk_score'] == 10
        assert entry['config'] == {'version': 1}
        assert entry['parties'] == ["Petrov Shipping LLC"]

    def test_unknown_case(self, tmp_path):
        assert AuditTrailManager(tmp_path).get_verdict_by_case_id("nope") is None

    def test_date_range(self, tmp_path):
        trail = AuditTrailManager(tmp_path)
        trail.log_verdict(make_verdict())
        now = datetime.now()
        assert len(trail.get_verdicts_by_date_range(now - timedelta(minutes=5), now + timedelta(minutes=5))) == 1
        assert trail.get_verdicts_by_date_range(now + timedelta(days=1), now + timedelta(days=2)) == []


# ============================================
# AUDIT LOGGER
# ============================================

class TestAuditLogger:

    @pytest.fixture
    def audit(self, tmp_path):
        logger = AuditLogger(log_dir=str(tmp_path))
        yield logger
        for handler in logger.logger.handlers:
            handler.close()
        logger.logger.handlers.clear()

    @staticmethod
    def read_events(tmp_path):
        lines = (tmp_path / "audit.log").read_text(encoding='utf-8').splitlines()
        return [json.loads(line.split(" - ", 3)[3]) for line in lines]

    def test_provider_failure_kinds(self, audit, tmp_path):
        audit.log_provider_failure("RUN-1", "CASE-1", "gleif", ProviderUnavailable("gleif", "HTTP 503"))
        audit.log_provider_failure("RUN-1", "CASE-1", "gleif", MalformedProviderResponse("gleif", "bad"))
        events = self.read_events(tmp_path)
        assert [e['event_type'] for e in events] == ["PROVIDER_UNAVAILABLE", "MALFORMED_PROVIDER_RESPONSE"]
        assert events[0]['run_id'] == "RUN-1"

    def test_case_id_sanitized(self, audit):
        event = audit.log_case_rejected("RUN-1", "CASE\nFAKE", "companyName", "MISSING_IDENTITY", "empty")
        assert event.case_id == "CASE FAKE"
        assert event.context == {'field': 'companyName'}

    def test_verdict_event(self, audit):
        event = audit.log_verdict("RUN-2", "CASE-2", "GREEN", 100, 0, 5, 1)
        assert event.severity == "INFO"
        assert event.context['provider_failures'] == 1

    def test_does_not_propagate(self, audit):
        assert audit.logger.propagate is False
        assert audit.logger.level == logging.INFO
