"""
Tests for the screening provider adapters

All HTTP traffic goes through a mocked requests session; no test touches
the network.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

sys.path.insert(0, str(Path(__file__).parent.parent))

from config_manager import ConfigManager
from providers import (
    GleifProvider,
    InterpolRedNoticeProvider,
    InterpolYellowNoticeProvider,
    MalformedProviderResponse,
    OffshoreLeaksProvider,
    OpenSanctionsProvider,
    ProviderUnavailable,
    RdapDomainAgeLookup,
    SamGovExclusionsProvider,
    SecEdgarProvider,
    TradeGovCslProvider,
    UkCompaniesHouseProvider,
    WorldBankDebarmentProvider,
    build_default_providers,
    build_domain_age_lookup,
)
from providers.export_control import tag_for_source
from providers.sanctions import name_variations, tags_for
from risk_models import Entity, EntityKind, FlagKind


def make_response(payload=None, status=200):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    return response


def make_session(payload=None, status=200, error=None):
    session = MagicMock()
    if error is not None:
        session.request.side_effect = error
    else:
        session.request.return_value = make_response(payload, status)
    return session


def sent_params(session):
    return session.request.call_args.kwargs['params']


# ============================================
# SHARED HTTP BEHAVIOUR
# ============================================

class TestHttpFailures:

    def test_http_error_status(self):
        provider = OpenSanctionsProvider(session=make_session(status=500), retry_attempts=1)
        with pytest.raises(ProviderUnavailable) as exc_info:
            provider.query("Acme")
        assert "HTTP 500" in str(exc_info.value)
        assert exc_info.value.provider == "opensanctions"

    def test_connection_error(self):
        session = make_session(error=requests.ConnectionError("refused"))
        provider = OpenSanctionsProvider(session=session, retry_attempts=1)
        with pytest.raises(ProviderUnavailable):
            provider.query("Acme")

    def test_timeout(self):
        session = make_session(error=requests.Timeout("slow"))
        provider = OpenSanctionsProvider(session=session, timeout=3, retry_attempts=1)
        with pytest.raises(ProviderUnavailable) as exc_info:
            provider.query("Acme")
        assert "timed out" in str(exc_info.value)

    def test_transient_errors_retried(self):
        session = MagicMock()
        session.request.side_effect = [
            requests.ConnectionError("reset"),
            make_response({'results': []}),
        ]
        provider = OpenSanctionsProvider(session=session, retry_attempts=2)
        assert provider.query("Acme") == []
        assert session.request.call_count == 2

    def test_http_status_not_retried(self):
        session = make_session(status=503)
        provider = OpenSanctionsProvider(session=session, retry_attempts=3)
        with pytest.raises(ProviderUnavailable):
            provider.query("Acme")
        assert session.request.call_count == 1

    def test_invalid_json(self):
        session = make_session()
        session.request.return_value.json.side_effect = ValueError("no json")
        provider = OpenSanctionsProvider(session=session, retry_attempts=1)
        with pytest.raises(MalformedProviderResponse):
            provider.query("Acme")

    def test_user_agent_and_timeout_sent(self):
        session = make_session({'results': []})
        provider = OpenSanctionsProvider(session=session, timeout=7, retry_attempts=1, user_agent="Test/1.0")
        provider.query("Acme")
        kwargs = session.request.call_args.kwargs
        assert kwargs['timeout'] == 7
        assert kwargs['headers']['User-Agent'] == "Test/1.0"


# ============================================
# OPENSANCTIONS
# ============================================

class TestOpenSanctions:

    def test_tag_mapping(self):
        assert tags_for(['us_ofac_sdn'], ['sanction']) == frozenset({FlagKind.SANCTIONS})
        assert FlagKind.WANTED in tags_for(['interpol_red_notices'], [])
        assert tags_for([], ['role.pep']) == frozenset({FlagKind.PEP})
        assert tags_for(['ext_unknown'], []) == frozenset({FlagKind.SANCTIONS})
        assert FlagKind.DEBARMENT in tags_for([], ['debarment'])

    def test_query(self):
        session = make_session({'results': [
            {'id': 'NK-1', 'caption': 'Ivan Petrov', 'score': 1.2, 'datasets': ['us_ofac_sdn'],
             'topics': ['sanction'], 'schema': 'Person'},
            {'id': 'NK-1', 'caption': 'Ivan Petrov', 'score': 1.2, 'datasets': ['us_ofac_sdn']},
            {'id': 'NK-2', 'caption': 'Ivan Petrenko', 'score': 0.4, 'datasets': ['ru_pep'],
             'properties': {'topics': ['role.pep'], 'country': ['ru']}},
        ]})
        provider = OpenSanctionsProvider(session=session, retry_attempts=1, api_key="k")
        candidates = provider.query("Ivan Petrov")

        assert [c.label for c in candidates] == ['Ivan Petrov', 'Ivan Petrenko']
        assert candidates[0].confidence == 1.0
        assert candidates[0].tags == frozenset({FlagKind.SANCTIONS})
        assert candidates[1].tags == frozenset({FlagKind.PEP})
        assert candidates[1].source_meta['countries'] == ['ru']
        assert session.request.call_args.kwargs['headers']['Authorization'] == "ApiKey k"
        queries = [c.kwargs['params']['q'] for c in session.request.call_args_list]
        assert queries == ["Ivan Petrov", "petrov ivan"]

    def test_name_variations(self):
        assert name_variations("Acme") == ["Acme"]
        assert name_variations("Ivan Petrov") == ["Ivan Petrov", "petrov ivan"]
        assert name_variations("Ivan Sergeyevich Petrov") == [
            "Ivan Sergeyevich Petrov", "petrov ivan sergeyevich", "ivan petrov",
        ]

    def test_surname_first_record_found(self):
        listed = {'id': 'NK-7', 'caption': 'PETROV, Ivan', 'score': 0.92,
                  'datasets': ['us_ofac_sdn'], 'topics': ['sanction']}
        session = MagicMock()
        session.request.side_effect = [
            make_response({'results': [
                {'id': 'NK-7', 'caption': 'PETROV, Ivan', 'score': 0.31, 'datasets': ['us_ofac_sdn']},
            ]}),
            make_response({'results': [listed]}),
            make_response({'results': []}),
        ]
        provider = OpenSanctionsProvider(session=session, retry_attempts=1)

        candidates = provider.query("Ivan Sergeyevich Petrov")

        assert session.request.call_count == 3
        assert len(candidates) == 1
        assert candidates[0].confidence == 0.92
        assert candidates[0].tags == frozenset({FlagKind.SANCTIONS})

    @pytest.mark.parametrize("payload", [
        {'data': []},
        {'results': [{'score': 0.9}]},
        {'results': [{'caption': 'X', 'score': 'high'}]},
        ['not', 'an', 'object'],
    ])
    def test_malformed(self, payload):
        provider = OpenSanctionsProvider(session=make_session(payload), retry_attempts=1)
        with pytest.raises(MalformedProviderResponse):
            provider.query("Acme")

    def test_covers_vessels(self):
        vessel = Entity(id="E1", display_name="IMO 9074729", normalized_name="imo 9074729",
                        kind=EntityKind.VESSEL)
        assert OpenSanctionsProvider(session=MagicMock()).applies_to(vessel)


# ============================================
# INTERPOL
# ============================================

class TestInterpol:

    PAYLOAD = {'_embedded': {'notices': [
        {'forename': 'JOHN', 'name': 'SMITH', 'entity_id': '2020/1',
         'nationalities': ['US'], '_links': {'self': {'href': 'https://example.org/n/1'}}},
    ]}}

    def test_splits_forename(self):
        session = make_session(self.PAYLOAD)
        provider = InterpolRedNoticeProvider(session=session, retry_attempts=1)
        candidates = provider.query("John Michael Smith")
        assert sent_params(session)['forename'] == "John"
        assert sent_params(session)['name'] == "Michael Smith"
        assert candidates[0].label == "JOHN SMITH"
        assert candidates[0].confidence is None
        assert candidates[0].tags == frozenset({FlagKind.WANTED})
        assert candidates[0].source_meta['url'] == 'https://example.org/n/1'

    def test_single_word_name(self):
        session = make_session(self.PAYLOAD)
        InterpolRedNoticeProvider(session=session, retry_attempts=1).query("smith")
        assert sent_params(session) == {'name': 'smith', 'resultPerPage': 20}

    def test_not_found_is_empty(self):
        provider = InterpolRedNoticeProvider(session=make_session(status=404), retry_attempts=1)
        assert provider.query("Nobody Here") == []

    def test_yellow_notices_tag_missing_person(self):
        provider = InterpolYellowNoticeProvider(session=make_session(self.PAYLOAD), retry_attempts=1)
        assert provider.query("John Smith")[0].tags == frozenset({FlagKind.MISSING_PERSON})

    def test_people_only(self):
        provider = InterpolRedNoticeProvider(session=MagicMock())
        acme = Entity(id="E1", display_name="Acme LLC", normalized_name="acme llc", kind=EntityKind.COMPANY)
        assert not provider.applies_to(acme)
        assert provider.supports_surname_fallback

    def test_malformed(self):
        provider = InterpolRedNoticeProvider(session=make_session({'_embedded': {'notices': 'x'}}),
                                             retry_attempts=1)
        with pytest.raises(MalformedProviderResponse):
            provider.query("John Smith")


# ============================================
# OFFSHORE LEAKS
# ============================================

class TestOffshoreLeaks:

    def test_falls_back_to_officers(self):
        session = MagicMock()
        session.request.side_effect = [
            make_response({'result': []}),
            make_response({'result': [{'id': '1', 'name': 'ACME HOLDINGS', 'score': 85,
                                       'type': [{'name': 'Officer'}]}]}),
        ]
        provider = OffshoreLeaksProvider(session=session, retry_attempts=1)
        candidates = provider.query("Acme Holdings")

        assert [call.kwargs['json']['type'] for call in session.request.call_args_list] == ['Entity', 'Officer']
        assert candidates[0].confidence == pytest.approx(0.85)
        assert candidates[0].tags == frozenset({FlagKind.OFFSHORE_LEAK})
        assert candidates[0].source_meta['record_type'] == 'Officer'

    def test_non_numeric_score(self):
        provider = OffshoreLeaksProvider(
            session=make_session({'result': [{'name': 'X', 'score': 'n/a'}]}), retry_attempts=1)
        with pytest.raises(MalformedProviderResponse):
            provider.query("X")


# ============================================
# DEBARMENT AND EXPORT CONTROL
# ============================================

class TestDebarment:

    def test_world_bank(self):
        session = make_session([{'firm_name': 'ACME TRADING LLC', 'country_name': 'UAE',
                                 'debar_from_date': '2021-01-01'}, {'firm_name': ''}])
        provider = WorldBankDebarmentProvider(session=session, retry_attempts=1)
        candidates = provider.query("Acme Trading")
        assert len(candidates) == 1
        assert candidates[0].tags == frozenset({FlagKind.DEBARMENT})
        assert candidates[0].confidence is None
        assert provider.max_edit_distance == 5

    def test_world_bank_malformed(self):
        provider = WorldBankDebarmentProvider(session=make_session({'rows': []}), retry_attempts=1)
        with pytest.raises(MalformedProviderResponse):
            provider.query("Acme")

    def test_sam_requires_key(self):
        assert not SamGovExclusionsProvider(session=MagicMock()).is_configured()
        assert SamGovExclusionsProvider(session=MagicMock(), api_key="k").is_configured()

    def test_sam_person_record(self):
        session = make_session({'excludedEntity': [
            {'exclusionIdentification': {'firstName': 'John', 'lastName': 'Smith'},
             'excludingAgency': 'GSA'},
        ]})
        provider = SamGovExclusionsProvider(session=session, retry_attempts=1, api_key="k")
        candidates = provider.query("John Smith")
        assert candidates[0].label == "John Smith"
        assert candidates[0].source_meta['agency'] == 'GSA'
        assert sent_params(session)['api_key'] == "k"


class TestTradeCsl:

    @pytest.mark.parametrize("source,tag", [
        ("Entity List (EL) - Bureau of Industry and Security", FlagKind.ENTITY_LIST),
        ("SDN", FlagKind.DENIED_PARTY),
        ("Denied Persons List", FlagKind.DENIED_PARTY),
        ("Unverified List (UVL) - Bureau of Industry and Security", FlagKind.UNVERIFIED_LIST),
        ("Sectoral Sanctions Identifications List (SSI)", FlagKind.EXPORT_CONTROL),
        ("", FlagKind.EXPORT_CONTROL),
    ])
    def test_source_grading(self, source, tag):
        assert tag_for_source(source) == tag

    def test_query(self):
        session = make_session({'results': [
            {'name': 'ACME ELECTRONICS', 'score': 92, 'source': 'Entity List (EL) - Bureau of Industry and Security',
             'addresses': [{'country': 'CN'}]},
            {'name': 'ACME LOGISTICS', 'source': 'Unverified List (UVL) - Bureau of Industry and Security'},
        ]})
        provider = TradeGovCslProvider(session=session, retry_attempts=1, api_key="k")
        candidates = provider.query("Acme Electronics")
        assert candidates[0].confidence == pytest.approx(0.92)
        assert candidates[0].tags == frozenset({FlagKind.ENTITY_LIST})
        assert candidates[0].source_meta['country'] == 'CN'
        assert candidates[1].confidence is None
        assert session.request.call_args.kwargs['headers']['subscription-key'] == "k"


# ============================================
# REGISTRIES
# ============================================

class TestRegistries:

    def test_companies_house_active_only(self):
        session = make_session({'items': [
            {'title': 'ACME TRADING LTD', 'company_status': 'active', 'company_number': '01234567'},
            {'title': 'ACME TRADING (OLD) LTD', 'company_status': 'dissolved'},
        ]})
        provider = UkCompaniesHouseProvider(session=session, retry_attempts=1, api_key="k")
        candidates = provider.query("Acme Trading Ltd")
        assert [c.label for c in candidates] == ['ACME TRADING LTD']
        assert candidates[0].confidence == 1.0
        assert candidates[0].tags == frozenset({FlagKind.REGISTRY_VERIFIED})
        assert session.request.call_args.kwargs['auth'] == ("k", "")

    def test_companies_house_scope(self):
        provider = UkCompaniesHouseProvider(session=MagicMock(), api_key="k")
        uk = Entity(id="E1", display_name="Acme Ltd", normalized_name="acme ltd",
                    kind=EntityKind.COMPANY, country="United Kingdom")
        de = Entity(id="E2", display_name="Acme GmbH", normalized_name="acme gmbh",
                    kind=EntityKind.COMPANY, country="Germany")
        assert provider.applies_to(uk)
        assert not provider.applies_to(de)

    def test_missing_key_is_malformed(self):
        provider = UkCompaniesHouseProvider(session=make_session({'total': 0}), retry_attempts=1, api_key="k")
        with pytest.raises(MalformedProviderResponse):
            provider.query("Acme")

    def test_gleif_legal_name(self):
        session = make_session({'data': [
            {'attributes': {'lei': '5493001KJTIIGC8Y1R12',
                            'entity': {'legalName': {'name': 'ACME TRADING GMBH'}, 'status': 'ACTIVE'}}},
        ]})
        candidates = GleifProvider(session=session, retry_attempts=1).query("Acme Trading GmbH")
        assert candidates[0].label == 'ACME TRADING GMBH'
        assert candidates[0].tags == frozenset({FlagKind.LEI_VERIFIED})
        assert candidates[0].source_meta['lei'] == '5493001KJTIIGC8Y1R12'

    def test_sec_display_name_cleaned(self):
        session = make_session({'hits': {'hits': [
            {'_source': {'display_names': ['ACME CORP  (ACME)  (CIK 0000123456)'], 'form': '10-K'}},
            {'_source': {'display_names': []}},
        ]}})
        candidates = SecEdgarProvider(session=session, retry_attempts=1).query("Acme Corp")
        assert [c.label for c in candidates] == ['ACME CORP']
        assert candidates[0].tags == frozenset({FlagKind.PUBLIC_FILING})


# ============================================
# DOMAIN AGE
# ============================================

class TestRdapDomainAge:

    def test_url_for(self):
        lookup = RdapDomainAgeLookup(session=MagicMock())
        assert lookup.url_for("acme.com") == "https://rdap.verisign.com/com/v1/domain/acme.com"
        assert lookup.url_for("acme.io") == "https://rdap.org/domain/acme.io"

    def test_age_days(self):
        session = make_session({'events': [
            {'eventAction': 'last changed', 'eventDate': '2024-01-05T00:00:00Z'},
            {'eventAction': 'registration', 'eventDate': '2024-01-01T00:00:00Z'},
        ]})
        lookup = RdapDomainAgeLookup(session=session, retry_attempts=1)
        now = datetime(2024, 1, 11, tzinfo=timezone.utc)
        assert lookup.age_days("Acme.com", now=now) == 10

    def test_unknown_domain(self):
        lookup = RdapDomainAgeLookup(session=make_session(status=404), retry_attempts=1)
        assert lookup.age_days("nothing-here.com") is None

    def test_no_registration_event(self):
        lookup = RdapDomainAgeLookup(session=make_session({'events': []}), retry_attempts=1)
        assert lookup.registration_date("acme.com") is None

    def test_bad_date(self):
        session = make_session({'events': [{'eventAction': 'registration', 'eventDate': 'yesterday'}]})
        lookup = RdapDomainAgeLookup(session=session, retry_attempts=1)
        with pytest.raises(MalformedProviderResponse):
            lookup.registration_date("acme.com")


# ============================================
# FACTORY
# ============================================

class TestBuildDefaultProviders:

    @pytest.fixture
    def config(self, tmp_path, monkeypatch):
        for env in ('OPENSANCTIONS_API_KEY', 'TRADE_GOV_API_KEY', 'SAM_GOV_API_KEY',
                    'UK_COMPANIES_HOUSE_API_KEY', 'OPENCORPORATES_API_KEY'):
            monkeypatch.delenv(env, raising=False)
        return ConfigManager(str(tmp_path / "absent.yaml"))

    def test_keyless_providers_skipped(self, config):
        names = [p.name for p in build_default_providers(config, session=MagicMock())]
        assert 'opensanctions' in names
        assert 'gleif' in names
        for keyed in ('trade_csl', 'sam_exclusions', 'uk_companies_house'):
            assert keyed not in names

    def test_key_from_environment(self, config, monkeypatch):
        monkeypatch.setenv('TRADE_GOV_API_KEY', 'abc')
        providers = {p.name: p for p in build_default_providers(config, session=MagicMock())}
        assert providers['trade_csl'].api_key == 'abc'

    def test_unknown_and_order(self, config):
        config.providers.enabled = ['gleif', 'no_such_registry', 'opensanctions']
        config.providers.timeouts = {'gleif': 3}
        providers = build_default_providers(config, session=MagicMock())
        assert [p.name for p in providers] == ['gleif', 'opensanctions']
        assert providers[0].timeout == 3.0

    def test_domain_age_lookup(self, config):
        assert isinstance(build_domain_age_lookup(config, session=MagicMock()), RdapDomainAgeLookup)
        config.providers.domain_age_lookup = False
        assert build_domain_age_lookup(config) is None
