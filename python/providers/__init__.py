"""
Screening Provider Package for the Trade Diligence Risk Engine

This package provides:
- The ScreeningProvider interface and HTTP base class
- Sanctions, wanted-list, offshore-leak, debarment and export-control adapters
- Corporate registry adapters (positive evidence)
- RDAP email domain age lookup
- build_default_providers() to assemble the configured provider list
"""

import logging
from typing import List, Optional

import requests

from providers.base import (
    ProviderError,
    ProviderUnavailable,
    MalformedProviderResponse,
    ScreeningProvider,
    HttpScreeningProvider,
    JsonHttpClient,
    create_retry_decorator,
)
from providers.sanctions import OpenSanctionsProvider
from providers.interpol import InterpolRedNoticeProvider, InterpolYellowNoticeProvider
from providers.offshore import OffshoreLeaksProvider
from providers.debarment import WorldBankDebarmentProvider, SamGovExclusionsProvider
from providers.export_control import TradeGovCslProvider
from providers.registries import (
    UkCompaniesHouseProvider,
    SingaporeAcraProvider,
    OpenCorporatesProvider,
    GleifProvider,
    SecEdgarProvider,
)
from providers.domain_age import RdapDomainAgeLookup

logger = logging.getLogger(__name__)

PROVIDER_CLASSES = {
    cls.name: cls for cls in (
        OpenSanctionsProvider,
        InterpolRedNoticeProvider,
        InterpolYellowNoticeProvider,
        OffshoreLeaksProvider,
        WorldBankDebarmentProvider,
        SamGovExclusionsProvider,
        TradeGovCslProvider,
        UkCompaniesHouseProvider,
        SingaporeAcraProvider,
        OpenCorporatesProvider,
        GleifProvider,
        SecEdgarProvider,
    )
}


def build_default_providers(config, session: Optional[requests.Session] = None) -> List[ScreeningProvider]:
    """Instantiate the providers enabled in configuration

    Providers that need an API key are skipped when none is set in the
    environment. Unknown names are logged and ignored.

    Args:
        config: ConfigManager instance
        session: Shared requests session (one is created if omitted)
    """
    provider_cfg = config.providers
    session = session or requests.Session()
    providers: List[ScreeningProvider] = []

    for name in provider_cfg.enabled:
        cls = PROVIDER_CLASSES.get(name)
        if cls is None:
            logger.warning("⚠ Unknown provider '%s' in configuration, skipping", name)
            continue
        provider = cls(
            session=session,
            timeout=provider_cfg.timeout_for(name),
            retry_attempts=provider_cfg.retry_attempts,
            api_key=provider_cfg.api_key(name),
            user_agent=provider_cfg.user_agent,
        )
        if not provider.is_configured():
            logger.warning("⚠ %s requires an API key (%s not set), skipping",
                           cls.label, provider_cfg.api_key_env.get(name, '?'))
            continue
        providers.append(provider)

    logger.info("✓ %d screening providers enabled: %s", len(providers),
                ", ".join(p.name for p in providers))
    return providers


def build_domain_age_lookup(config, session: Optional[requests.Session] = None) -> Optional[RdapDomainAgeLookup]:
    """RDAP lookup when enabled in configuration, else None"""
    provider_cfg = config.providers
    if not provider_cfg.domain_age_lookup:
        return None
    return RdapDomainAgeLookup(
        session=session or requests.Session(),
        timeout=provider_cfg.timeout_for(RdapDomainAgeLookup.name),
        retry_attempts=provider_cfg.retry_attempts,
        user_agent=provider_cfg.user_agent,
    )


__all__ = [
    'ProviderError',
    'ProviderUnavailable',
    'MalformedProviderResponse',
    'ScreeningProvider',
    'HttpScreeningProvider',
    'JsonHttpClient',
    'create_retry_decorator',
    'OpenSanctionsProvider',
    'InterpolRedNoticeProvider',
    'InterpolYellowNoticeProvider',
    'OffshoreLeaksProvider',
    'WorldBankDebarmentProvider',
    'SamGovExclusionsProvider',
    'TradeGovCslProvider',
    'UkCompaniesHouseProvider',
    'SingaporeAcraProvider',
    'OpenCorporatesProvider',
    'GleifProvider',
    'SecEdgarProvider',
    'RdapDomainAgeLookup',
    'PROVIDER_CLASSES',
    'build_default_providers',
    'build_domain_age_lookup',
]
