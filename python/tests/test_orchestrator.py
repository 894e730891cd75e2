"""
Tests for the diligence orchestrator

Providers are in-process stubs so the runs exercise the real fan-out,
timeout and fold logic without touching the network.
"""

import asyncio
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from config_manager import ConfigManager
from orchestrator import DiligenceEngine
from providers import ProviderUnavailable, ScreeningProvider
from risk_models import (
    Candidate, Case, CaseValidationError, EntityKind, FlagKind, PartyRecord, RiskLevel,
)


# ============================================
# FIXTURES
# ============================================

class StubProvider(ScreeningProvider):
    """Returns canned candidates keyed by the queried name"""

    def __init__(self, name="stub", label="Stub Registry", results=None, error=None,
                 delay=0.0, block=None, fallback=False):
        self.name = name
        self.label = label
        self.results = results or {}
        self.error = error
        self.delay = delay
        self.block = block
        self.supports_surname_fallback = fallback
        self.calls = []

    def query(self, name):
        self.calls.append(name)
        if self.block is not None:
            self.block.wait(timeout=5)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.results.get(name, [])


class BrokenPayloadProvider(StubProvider):
    def query(self, name):
        return [Candidate(label=payload['name']) for payload in [{}]]


@pytest.fixture
def config(tmp_path):
    cfg = ConfigManager(str(tmp_path / "absent.yaml"))
    cfg.providers.timeout_seconds = 0.5
    cfg.providers.retry_attempts = 1
    return cfg


@pytest.fixture
def audit():
    return MagicMock()


@pytest.fixture
def make_engine(config, audit):
    engines = []

    def _make(providers, domain_lookup=None, executor=None):
        engine = DiligenceEngine(config, providers, domain_lookup=domain_lookup,
                                 executor=executor, audit=audit)
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.close()


def wanted_candidate(label, confidence=0.9):
    return Candidate(
        label=label,
        confidence=confidence,
        tags=frozenset({FlagKind.WANTED}),
        datasets=('interpol_red_notices',),
    )


# ============================================
# SCENARIOS
# ============================================

class TestScenarios:
    """End-to-end verdicts for representative cases"""

    @pytest.mark.asyncio
    async def test_sanctioned_jurisdiction_penalized(self, make_engine):
        engine = make_engine([StubProvider()])
        iran = Case.from_dict({'allParties': [
            {'company': 'Acme Trading LLC', 'role': 'buyer', 'country': 'Iran'}
        ]})
        neutral = Case.from_dict({'allParties': [
            {'company': 'Acme Trading LLC', 'role': 'buyer', 'country': 'Germany'}
        ]})

        iran_verdict = await engine.run(iran)
        neutral_verdict = await engine.run(neutral)

        assert any('FATF BLACKLIST' in f for f in iran_verdict.red_flags)
        assert any('sanctioned country' in f for f in iran_verdict.red_flags)
        assert iran_verdict.score < neutral_verdict.score
        assert neutral_verdict.level == RiskLevel.GREEN

    @pytest.mark.asyncio
    async def test_wanted_list_hit_is_black(self, make_engine):
        provider = StubProvider(
            name="interpol_red", label="Interpol Red Notices",
            results={'Acme Trading LLC': [wanted_candidate('ACME TRADING LLC')]},
        )
        engine = make_engine([provider])

        verdict = await engine.run(Case(company_name='Acme Trading LLC', country='Germany'))

        assert len(verdict.findings) == 1
        assert FlagKind.WANTED in verdict.findings[0].tags
        assert verdict.level == RiskLevel.BLACK
        assert verdict.score <= 25

    @pytest.mark.asyncio
    async def test_positive_signals_cannot_dilute_sanctions(self, make_engine):
        sanctions = StubProvider(
            name="opensanctions", label="OpenSanctions",
            results={'Acme Trading LLC': [Candidate(
                label='Acme Trading LLC', confidence=0.95,
                tags=frozenset({FlagKind.SANCTIONS}), datasets=('us_ofac_sdn',),
            )]},
        )
        registry = StubProvider(
            name="gleif", label="GLEIF",
            results={'Acme Trading LLC': [Candidate(
                label='Acme Trading LLC', tags=frozenset({FlagKind.LEI_VERIFIED}),
            )]},
        )
        engine = make_engine([sanctions, registry])

        verdict = await engine.run(Case(company_name='Acme Trading LLC', email='ops@acmetrading.com'))

        assert verdict.positive_signals
        assert verdict.level == RiskLevel.BLACK
        assert verdict.score <= 25

    @pytest.mark.asyncio
    async def test_disposable_email_only(self, make_engine):
        engine = make_engine([StubProvider()])

        verdict = await engine.run(Case(email='foo@mailinator.com'))

        assert any('Disposable email' in f for f in verdict.red_flags)
        assert verdict.score < 100
        assert verdict.level != RiskLevel.BLACK
        assert verdict.entities == ()
        assert 'Email Validation' in verdict.checked_sources

    @pytest.mark.asyncio
    async def test_bill_of_lading_case(self, make_engine):
        text = (
            "BILL OF LADING\n"
            "B/L NO: MSCU7654321\n"
            "SHIPPER: Acme Trading LLC\n"
            "CONSIGNEE: Global Imports Ltd\n"
            "PORT OF LOADING: Rotterdam\n"
            "PORT OF DISCHARGE: Jebel Ali\n"
            "IMO NO: 9074729\n"
            "CONTAINER: MSCU1234567\n"
        )
        engine = make_engine([StubProvider()])

        verdict = await engine.run(Case(company_name='Acme Trading LLC', document_text=text))

        names = [e.display_name for e in verdict.entities]
        assert 'Acme Trading LLC' in names
        assert 'Global Imports Ltd' in names
        assert any(e.kind is EntityKind.VESSEL for e in verdict.entities)
        assert verdict.documents['billOfLading']['bl_number'] == 'MSCU7654321'
        assert verdict.documents['ports']['discharge']['locode'] == 'AEJEA'
        assert verdict.documents['vessel']['valid'] is True
        assert "✓ Bill of Lading detected and parsed" in verdict.positive_signals
        assert any('FATF GREY LIST' in f for f in verdict.red_flags)
        assert 'Bill of Lading Extraction' in verdict.checked_sources


# ============================================
# SCORING THROUGH THE ENGINE
# ============================================

class TestAccumulation:

    @pytest.mark.asyncio
    async def test_same_fact_from_one_provider_counts_once(self, make_engine):
        pep = frozenset({FlagKind.PEP})
        provider = StubProvider(results={'Acme Trading LLC': [
            Candidate(label='Acme Trading LLC', confidence=0.8, tags=pep),
            Candidate(label='ACME TRADING L.L.C.', confidence=0.8, tags=pep),
        ]})
        engine = make_engine([provider])

        verdict = await engine.run(Case(company_name='Acme Trading LLC'))

        assert len(verdict.findings) == 2
        assert verdict.score == 85

    @pytest.mark.asyncio
    async def test_independent_providers_stack(self, make_engine):
        pep = frozenset({FlagKind.PEP})
        results = {'Acme Trading LLC': [Candidate(label='Acme Trading LLC', confidence=0.8, tags=pep)]}
        engine = make_engine([
            StubProvider(name="a", label="A", results=results),
            StubProvider(name="b", label="B", results=results),
        ])

        verdict = await engine.run(Case(company_name='Acme Trading LLC'))

        assert verdict.score == 70
        assert verdict.level == RiskLevel.YELLOW

    @pytest.mark.asyncio
    async def test_registry_confirmation_is_positive(self, make_engine):
        registry = StubProvider(name="gleif", label="GLEIF", results={'Acme Trading LLC': [
            Candidate(label='ACME TRADING LLC', tags=frozenset({FlagKind.LEI_VERIFIED})),
        ]})
        engine = make_engine([registry])

        verdict = await engine.run(Case(company_name='Acme Trading LLC'))

        assert verdict.score == 100
        assert any(s.startswith('✓') for s in verdict.positive_signals)
        assert verdict.red_flags == ()

    @pytest.mark.asyncio
    async def test_surname_fallback(self, make_engine):
        provider = StubProvider(
            name="interpol_red", label="Interpol Red Notices", fallback=True,
            results={'smith': [wanted_candidate('SMITH JOHN', confidence=0.3)]},
        )
        engine = make_engine([provider])

        verdict = await engine.run(Case(representative='John Michael Smith'))

        assert provider.calls == ['John Michael Smith', 'smith']
        assert verdict.level == RiskLevel.BLACK

    @pytest.mark.asyncio
    async def test_corporate_domain_age(self, make_engine):
        lookup = MagicMock()
        lookup.name = "rdap"
        lookup.label = "RDAP Domain Registry"
        lookup.age_days.return_value = 10
        engine = make_engine([StubProvider()], domain_lookup=lookup)

        verdict = await engine.run(Case(email='ceo@acme-trading.com'))

        lookup.age_days.assert_called_once_with('acme-trading.com')
        assert verdict.contacts['domainAge'] == {'acme-trading.com': 10}
        assert verdict.score == 70
        assert 'RDAP Domain Registry' in verdict.checked_sources


# ============================================
# FAILURE TOLERANCE
# ============================================

class TestProviderFailures:

    @pytest.mark.asyncio
    async def test_unavailable_provider_is_reported(self, make_engine, audit):
        down = StubProvider(name="down", label="Down Registry",
                            error=ProviderUnavailable("down", "HTTP 503"))
        up = StubProvider(name="up", label="Up Registry")
        engine = make_engine([down, up])

        verdict = await engine.run(Case(company_name='Acme Trading LLC'))

        assert verdict.unavailable_sources == ('Down Registry',)
        assert 'Up Registry' in verdict.checked_sources
        assert 'Down Registry' not in verdict.checked_sources
        audit.log_provider_failure.assert_called_once()

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self, make_engine, config):
        config.providers.timeouts = {'slow': 0.05}
        slow = StubProvider(name="slow", label="Slow Registry", delay=0.5)
        engine = make_engine([slow])

        started = time.perf_counter()
        verdict = await engine.run(Case(company_name='Acme Trading LLC'))

        assert time.perf_counter() - started < 0.45
        assert verdict.unavailable_sources == ('Slow Registry',)
        assert verdict.level == RiskLevel.GREEN

    @pytest.mark.asyncio
    async def test_queued_calls_keep_their_full_timeout(self, make_engine, audit):
        # four calls of 0.3s each behind a single worker, 0.5s timeout per call
        busy = StubProvider(name="busy", label="Busy Registry", delay=0.3)
        engine = make_engine([busy], executor=ThreadPoolExecutor(max_workers=1))
        case = Case.from_dict({'allParties': [
            {'company': f'{name} Trading LLC', 'role': 'supplier'}
            for name in ('Acme', 'Borealis', 'Cobalt', 'Delta')
        ]})

        verdict = await engine.run(case)

        assert len(busy.calls) == 4
        assert verdict.unavailable_sources == ()
        assert 'Busy Registry' in verdict.checked_sources
        audit.log_provider_failure.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_payload_is_recovered(self, make_engine, audit):
        engine = make_engine([BrokenPayloadProvider(name="broken", label="Broken Registry")])

        verdict = await engine.run(Case(company_name='Acme Trading LLC'))

        assert verdict.unavailable_sources == ('Broken Registry',)
        error = audit.log_provider_failure.call_args[0][3]
        assert type(error).__name__ == 'MalformedProviderResponse'

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, make_engine, audit, config):
        config.providers.timeout_seconds = 5
        release = threading.Event()
        engine = make_engine([StubProvider(block=release)])

        task = asyncio.ensure_future(engine.run(Case(company_name='Acme Trading LLC')))
        await asyncio.sleep(0.05)
        task.cancel()
        try:
            with pytest.raises(asyncio.CancelledError):
                await task
        finally:
            release.set()

        audit.log_run_cancelled.assert_called_once()
        audit.log_verdict.assert_not_called()


# ============================================
# VALIDATION
# ============================================

class TestCaseRejection:

    @pytest.mark.asyncio
    async def test_empty_case_rejected(self, make_engine, audit):
        engine = make_engine([StubProvider()])

        with pytest.raises(CaseValidationError) as exc_info:
            await engine.run(Case())

        assert exc_info.value.code == 'MISSING_IDENTITY'
        audit.log_case_rejected.assert_called_once()

    @pytest.mark.asyncio
    async def test_parties_without_names_rejected(self, make_engine):
        engine = make_engine([StubProvider()])

        with pytest.raises(CaseValidationError) as exc_info:
            await engine.run(Case(parties=(PartyRecord(role='buyer'),)))

        assert exc_info.value.code == 'NO_ENTITIES'

    def test_run_sync(self, make_engine):
        engine = make_engine([StubProvider()])
        verdict = engine.run_sync(Case(company_name='Acme Trading LLC', country='Germany'))
        assert verdict.level == RiskLevel.GREEN
        assert verdict.score == 100
