#!/usr/bin/env python3
"""
Diligence Aggregation Orchestrator

Runs one Case through the whole engine:

1. Validate the case and extract any bill of lading from its document text
2. Normalize parties into a deduplicated entity set
3. Fan out one task per (entity x applicable provider), each provider call
   on the thread pool under a timeout; fan back in with gather()
4. Run the local checks (jurisdictions, email and domain age, IBAN/SWIFT,
   instruments, ports, vessel IMO)
5. Fold every signal into a fresh RiskState and classify it

A provider that fails or times out contributes nothing and is reported
as unavailable; it never aborts the run. Cancelling run() cancels every
pending task and no verdict is produced.

Usage:
    python orchestrator.py case.json [--config config.yaml] [--report-dir reports]
"""

import argparse
import asyncio
import functools
import json
import logging
import sys
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import accumulator
from audit_logger import AuditLogger, get_audit_logger
from classifier import classify
from config_manager import ConfigManager, ConfigurationError, LoggingConfig, get_config
from document_rules import BillOfLading, detect_instruments, extract_bill_of_lading
from matcher import FuzzyIdentityMatcher
from monitoring import configure_monitoring, provider_timer, record_provider_failure, record_verdict
from normalizer import EntityNormalizer
from providers import (
    MalformedProviderResponse, ProviderError, ProviderUnavailable, RdapDomainAgeLookup,
    ScreeningProvider, build_default_providers, build_domain_age_lookup,
)
from risk_models import Case, CaseValidationError, Entity, Finding, Signal, Verdict
from rule_tables import assess_jurisdiction, classify_email, verify_port
from text_utils import sanitize_for_logging
from validators import looks_like_imo, validate_iban, validate_imo, validate_swift

logger = logging.getLogger(__name__)

# Labels of the local checks, reported in databasesChecked
EMAIL_CHECK = "Email Validation"
JURISDICTION_CHECK = "Jurisdiction Risk"
IBAN_CHECK = "IBAN Validation"
SWIFT_CHECK = "SWIFT/BIC Validation"
INSTRUMENT_CHECK = "Financial Instrument Detection"
BILL_OF_LADING_CHECK = "Bill of Lading Extraction"
PORT_CHECK = "Port Verification (UN/LOCODE)"
IMO_CHECK = "IMO Check Digit"


@dataclass
class ScreeningOutcome:
    """Result of one (entity, provider) task"""
    entity: Entity
    provider: ScreeningProvider
    findings: List[Finding] = field(default_factory=list)
    error: Optional[ProviderError] = None


@dataclass
class DomainOutcome:
    domain: str
    age_days: Optional[int] = None
    error: Optional[ProviderError] = None


class DiligenceEngine:
    """Screens cases against the configured providers and local rule tables"""

    def __init__(
        self,
        config: ConfigManager,
        providers: Sequence[ScreeningProvider],
        matcher: Optional[FuzzyIdentityMatcher] = None,
        normalizer: Optional[EntityNormalizer] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        domain_lookup: Optional[RdapDomainAgeLookup] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.config = config
        self.providers = list(providers)
        self.matcher = matcher or FuzzyIdentityMatcher(config.matching)
        self.normalizer = normalizer or EntityNormalizer(config.matching)
        self.executor = executor or ThreadPoolExecutor(max_workers=config.providers.max_workers)
        self.domain_lookup = domain_lookup
        self.audit = audit or get_audit_logger(config.logging.audit_log_dir)

    @classmethod
    def from_config(cls, config: Optional[ConfigManager] = None) -> 'DiligenceEngine':
        """Engine with the providers and domain lookup enabled in configuration"""
        config = config or get_config()
        configure_monitoring(config.monitoring)
        return cls(
            config=config,
            providers=build_default_providers(config),
            domain_lookup=build_domain_age_lookup(config),
        )

    def close(self) -> None:
        self.executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Provider calls
    # ------------------------------------------------------------------

    def _deadline(self, name: str, requests: int = 1) -> float:
        """Wall-clock limit for one provider call, retries included"""
        return self.config.providers.timeout_for(name) * self.config.providers.retry_attempts * requests

    @staticmethod
    def _call_provider(provider: ScreeningProvider, name: str):
        with provider_timer(provider.name):
            try:
                return provider.query(name)
            except (KeyError, TypeError, AttributeError, ValueError) as e:
                raise MalformedProviderResponse(provider.name, f"unexpected payload: {type(e).__name__}") from e

    async def _in_executor(self, call, deadline: float):
        """Run call on the pool; the deadline starts when a worker picks it up

        Calls queued behind a busy pool are not charged for the wait.

        Raises:
            asyncio.TimeoutError: the call ran longer than deadline
        """
        loop = asyncio.get_running_loop()
        started = asyncio.Event()

        def worker():
            loop.call_soon_threadsafe(started.set)
            return call()

        future = loop.run_in_executor(self.executor, worker)
        try:
            await started.wait()
        except asyncio.CancelledError:
            future.cancel()
            raise
        return await asyncio.wait_for(future, timeout=deadline)

    async def _query(self, provider: ScreeningProvider, name: str):
        deadline = self._deadline(provider.name, provider.requests_per_query)
        call = functools.partial(self._call_provider, provider, name)
        try:
            return await self._in_executor(call, deadline)
        except asyncio.TimeoutError as e:
            raise ProviderUnavailable(provider.name, f"no answer within {deadline:g}s") from e

    async def _screen(self, entity: Entity, provider: ScreeningProvider) -> ScreeningOutcome:
        try:
            candidates = await self._query(provider, entity.display_name)
            findings = self.matcher.match(entity, provider.name, candidates, provider.max_edit_distance)

            if not candidates and provider.supports_surname_fallback:
                surname = self.matcher.fallback_query(entity)
                if surname:
                    logger.debug("Surname fallback on %s for %s", provider.name, entity.id)
                    candidates = await self._query(provider, surname)
                    findings = self.matcher.match(entity, provider.name, candidates, fallback=True)
        except ProviderError as e:
            return ScreeningOutcome(entity, provider, error=e)
        return ScreeningOutcome(entity, provider, findings)

    async def _domain_age(self, domain: str) -> DomainOutcome:
        deadline = self._deadline(self.domain_lookup.name)
        call = functools.partial(self.domain_lookup.age_days, domain)
        try:
            age = await self._in_executor(call, deadline)
        except asyncio.TimeoutError:
            return DomainOutcome(domain, error=ProviderUnavailable(self.domain_lookup.name, "timed out"))
        except ProviderError as e:
            return DomainOutcome(domain, error=e)
        return DomainOutcome(domain, age_days=age)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, case: Case) -> Verdict:
        """Screen a case and return its verdict

        Raises:
            CaseValidationError: case carries nothing screenable
            asyncio.CancelledError: run was cancelled; nothing is returned
        """
        run_id = f"RUN-{uuid.uuid4().hex[:8]}"
        started = time.perf_counter()

        bill = extract_bill_of_lading(case.document_text)
        try:
            case.validate()
            entities = self.normalizer.normalize(case, bill)
            emails = self._emails(case)
            if not entities and not emails:
                raise CaseValidationError(
                    "No screenable party or email could be derived from the case",
                    field="allParties",
                    code="NO_ENTITIES",
                    suggestion="Provide at least one non-empty company or person name"
                )
        except CaseValidationError as e:
            self.audit.log_case_rejected(run_id, case.case_id, e.field, e.code, str(e))
            raise

        assessments = [classify_email(e) for e in emails]
        corporate_domains = list(dict.fromkeys(a.domain for a in assessments if a.corporate))

        screen_tasks = [
            asyncio.ensure_future(self._screen(entity, provider))
            for entity in entities
            for provider in self.providers
            if provider.applies_to(entity)
        ]
        domain_tasks = [
            asyncio.ensure_future(self._domain_age(domain))
            for domain in (corporate_domains if self.domain_lookup else [])
        ]
        tasks = screen_tasks + domain_tasks
        logger.info("🚀 %s: screening %d entities with %d tasks (case %s)",
                    run_id, len(entities), len(tasks), sanitize_for_logging(case.case_id))

        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
        except asyncio.CancelledError:
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            self.audit.log_run_cancelled(run_id, case.case_id, len(pending))
            logger.warning("✗ %s cancelled with %d tasks pending", run_id, len(pending))
            raise

        for result in results:
            if isinstance(result, BaseException):
                raise result

        outcomes: List[ScreeningOutcome] = results[:len(screen_tasks)]
        domain_outcomes: List[DomainOutcome] = results[len(screen_tasks):]

        checked, unavailable = self._sources(run_id, case, outcomes, domain_outcomes)
        findings = [f for o in outcomes for f in o.findings]

        signals: List[Signal] = accumulator.finding_signals(findings, self.config.scoring)
        details = self._local_checks(case, entities, bill, assessments, domain_outcomes, signals, checked)

        state = accumulator.fold(signals)
        level, score = classify(state, self.config.classification)

        verdict = Verdict(
            case_id=case.case_id,
            level=level,
            score=score,
            red_flags=state.red_flags,
            positive_signals=state.positive_signals,
            checked_sources=tuple(dict.fromkeys(checked)),
            unavailable_sources=tuple(u for u in dict.fromkeys(unavailable) if u not in checked),
            findings=tuple(findings),
            entities=tuple(entities),
            jurisdictions=details['jurisdictions'],
            financial=details['financial'],
            documents=details['documents'],
            contacts=details['contacts'],
        )

        elapsed = time.perf_counter() - started
        record_verdict(level.name, elapsed)
        self.audit.log_verdict(run_id, case.case_id, level.name, score,
                               len(verdict.red_flags), len(verdict.checked_sources),
                               len(verdict.unavailable_sources))
        logger.info("✓ %s: %s (%d) with %d findings in %.2fs",
                    run_id, level.name, score, len(findings), elapsed)
        return verdict

    def run_sync(self, case: Case) -> Verdict:
        return asyncio.run(self.run(case))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _emails(case: Case) -> List[str]:
        candidates = [case.email] + [p.email for p in case.parties]
        return list(dict.fromkeys(e for e in candidates if e))

    def _sources(self, run_id, case, outcomes, domain_outcomes):
        """Provider labels that answered, and those that never did"""
        responded = set()
        failed = set()
        for outcome in outcomes:
            provider = outcome.provider
            if outcome.error is None:
                responded.add(provider.name)
                continue
            failed.add(provider.name)
            record_provider_failure(provider.name, outcome.error)
            self.audit.log_provider_failure(run_id, case.case_id, provider.name, outcome.error,
                                            entity_id=outcome.entity.id)
            logger.warning("⚠ %s failed for %s: %s", provider.name, outcome.entity.id, outcome.error)

        checked = [p.label for p in self.providers if p.name in responded]
        unavailable = [p.label for p in self.providers if p.name in failed and p.name not in responded]

        for outcome in domain_outcomes:
            if outcome.error is None:
                checked.append(self.domain_lookup.label)
            else:
                record_provider_failure(self.domain_lookup.name, outcome.error)
                self.audit.log_provider_failure(run_id, case.case_id, self.domain_lookup.name, outcome.error)
                unavailable.append(self.domain_lookup.label)
        return checked, unavailable

    def _local_checks(
        self,
        case: Case,
        entities: List[Entity],
        bill: Optional[BillOfLading],
        email_assessments,
        domain_outcomes: List[DomainOutcome],
        signals: List[Signal],
        checked: List[str],
    ) -> Dict[str, Any]:
        """Append local rule signals and collect the report sections"""
        scoring = self.config.scoring
        financial: Dict[str, Any] = {}
        documents: Dict[str, Any] = {}
        contacts: Dict[str, Any] = {}

        # Email and domain age
        if email_assessments:
            checked.append(EMAIL_CHECK)
            contacts['emails'] = [a.to_dict() for a in email_assessments]
            for assessment in email_assessments:
                signals.extend(accumulator.email_signals(assessment, scoring))
        ages = {o.domain: o.age_days for o in domain_outcomes if o.error is None}
        if ages:
            contacts['domainAge'] = ages
        for domain, age in ages.items():
            signals.extend(accumulator.domain_age_signals(domain, age, scoring))

        # Banking
        if case.iban:
            checked.append(IBAN_CHECK)
            iban = validate_iban(case.iban)
            financial['iban'] = iban.to_dict()
            signals.extend(accumulator.iban_signals(iban, scoring))
        if case.swift:
            checked.append(SWIFT_CHECK)
            swift = validate_swift(case.swift)
            financial['swift'] = swift.to_dict()
            signals.extend(accumulator.swift_signals(swift, scoring))

        # Documents
        if bill:
            checked.append(BILL_OF_LADING_CHECK)
            documents['billOfLading'] = bill.to_dict()
            signals.extend(accumulator.bill_of_lading_signals(bill))
        instruments = detect_instruments(case.document_text)
        if case.document_text:
            checked.append(INSTRUMENT_CHECK)
            documents['instruments'] = [m.to_dict() for m in instruments]
            signals.extend(accumulator.instrument_signals(instruments, scoring))

        # Ports
        port_countries = []
        ports = {
            'Loading': case.port_of_loading or (bill.get('port_of_loading') if bill else None),
            'Discharge': case.port_of_discharge or (bill.get('port_of_discharge') if bill else None),
        }
        for role, port in ports.items():
            if not port:
                continue
            checked.append(PORT_CHECK)
            verification = verify_port(port)
            documents.setdefault('ports', {})[role.lower()] = verification.to_dict()
            signals.extend(accumulator.port_signals(role, verification, scoring))
            if verification.country:
                port_countries.append(verification.country)

        # Vessel
        vessel = case.vessel_identifier or (bill.get('vessel_imo') if bill else None)
        if vessel and (looks_like_imo(vessel) or vessel.strip().isdigit()):
            checked.append(IMO_CHECK)
            imo = validate_imo(vessel)
            documents['vessel'] = imo.to_dict()
            signals.extend(accumulator.vessel_signals(imo, scoring))

        # Jurisdictions
        countries = [e.country for e in entities if e.country]
        countries += [case.country] if case.country else []
        countries += list(case.jurisdictions) + port_countries
        jurisdictions = [assess_jurisdiction(c) for c in dict.fromkeys(countries)]
        if jurisdictions:
            checked.append(JURISDICTION_CHECK)
            signals.extend(accumulator.jurisdiction_signals(jurisdictions, scoring))

        return {
            'jurisdictions': tuple(j.to_dict() for j in jurisdictions),
            'financial': financial,
            'documents': documents,
            'contacts': contacts,
        }


# ============================================
# CLI
# ============================================

def setup_logging(logging_config: LoggingConfig, verbose: bool = False) -> None:
    """Configure root logging from the logging section of config.yaml"""
    handlers: List[logging.Handler] = []
    if logging_config.console:
        handlers.append(logging.StreamHandler())
    if logging_config.file:
        log_path = Path(logging_config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding='utf-8'))

    level = logging.DEBUG if verbose else getattr(logging, logging_config.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=logging_config.format, handlers=handlers or None, force=True)


def load_case(path: str) -> Case:
    with open(path, 'r', encoding='utf-8') as f:
        return Case.from_dict(json.load(f))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Screen a case file and write its reports"""
    parser = argparse.ArgumentParser(description="Trade diligence risk screening")
    parser.add_argument("case_file", help="Case JSON file (camelCase fields)")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--report-dir", help="Directory for HTML/JSON reports")
    parser.add_argument("--json", action="store_true", help="Print the verdict JSON to stdout")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    args = parser.parse_args(argv)

    from report_generator import ReportGenerator

    try:
        config = get_config(args.config)
        setup_logging(config.logging, verbose=args.verbose)
        case = load_case(args.case_file)
    except (ConfigurationError, CaseValidationError, OSError, ValueError) as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        return 2

    engine = DiligenceEngine.from_config(config)
    try:
        verdict = engine.run_sync(case)
    except CaseValidationError as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        return 2
    finally:
        engine.close()

    reporting = config.reporting
    generator = ReportGenerator(
        output_dir=Path(args.report_dir or reporting.output_directory),
        include_audit_trail=reporting.include_audit_trail,
    )
    paths = generator.generate(verdict, html=reporting.html)

    if args.json:
        print(json.dumps(verdict.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(f"\n=== {verdict.case_id}: {verdict.level.name} ({verdict.score}/100) ===")
        for flag in verdict.red_flags:
            print(f"  {flag}")
        for signal in verdict.positive_signals:
            print(f"  {signal}")
        print(f"\nSources checked: {', '.join(verdict.checked_sources)}")
        if verdict.unavailable_sources:
            print(f"Unavailable: {', '.join(verdict.unavailable_sources)}")
        for path in paths:
            print(f"✓ Report: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
