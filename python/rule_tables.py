"""
Static risk rule tables

Jurisdiction tiers (FATF lists, comprehensive sanctions, secrecy
jurisdictions), email provider classes, country codes, sanctioned bank
identifiers and the UN/LOCODE port table. Lookups are pure functions over
module-level tables; nothing here touches the network.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from text_utils import contains_term

logger = logging.getLogger(__name__)


# ============================================
# JURISDICTIONS
# ============================================

FATF_BLACKLIST = ['iran', 'north korea', 'dprk', 'myanmar', 'burma']

FATF_GREYLIST = [
    'uae', 'united arab emirates', 'emirates', 'dubai', 'abu dhabi',
    'turkey', 'türkiye', 'turkiye',
    'south africa', 'syria', 'yemen', 'nigeria', 'pakistan', 'philippines',
    'barbados', 'burkina faso', 'cameroon',
    'democratic republic of congo', 'drc',
    'gibraltar', 'haiti', 'jamaica', 'jordan', 'mali', 'mozambique', 'panama',
    'senegal', 'south sudan', 'tanzania', 'uganda', 'vietnam',
]

SANCTIONED_JURISDICTIONS = [
    'russia', 'russian federation', 'belarus', 'iran', 'north korea', 'dprk',
    'syria', 'cuba', 'venezuela', 'crimea', 'donetsk', 'luhansk', 'myanmar', 'burma',
]

HIGH_SECRECY = [
    'switzerland', 'luxembourg', 'cayman islands', 'caymans', 'singapore',
    'hong kong', 'jersey', 'guernsey', 'isle of man', 'british virgin islands',
    'bvi', 'bermuda', 'bahamas', 'mauritius', 'liechtenstein', 'monaco',
    'andorra', 'panama', 'seychelles', 'marshall islands', 'delaware',
]


class JurisdictionTier(str, Enum):
    FATF_BLACKLIST = "FATF_BLACKLIST"
    SANCTIONED = "SANCTIONED"
    FATF_GREYLIST = "FATF_GREYLIST"
    HIGH_SECRECY = "HIGH_SECRECY"
    STANDARD = "STANDARD"


_TIER_RISK = {
    JurisdictionTier.FATF_BLACKLIST: 'critical',
    JurisdictionTier.SANCTIONED: 'critical',
    JurisdictionTier.FATF_GREYLIST: 'high',
    JurisdictionTier.HIGH_SECRECY: 'medium',
    JurisdictionTier.STANDARD: 'low',
}


@dataclass(frozen=True)
class JurisdictionAssessment:
    """Every list a country string hits, plus the single highest tier"""
    country: str
    fatf_blacklist: bool = False
    sanctioned: bool = False
    fatf_greylist: bool = False
    high_secrecy: bool = False

    @property
    def tier(self) -> JurisdictionTier:
        if self.fatf_blacklist:
            return JurisdictionTier.FATF_BLACKLIST
        if self.sanctioned:
            return JurisdictionTier.SANCTIONED
        if self.fatf_greylist:
            return JurisdictionTier.FATF_GREYLIST
        if self.high_secrecy:
            return JurisdictionTier.HIGH_SECRECY
        return JurisdictionTier.STANDARD

    def to_dict(self) -> Dict[str, Any]:
        return {
            'country': self.country,
            'fatfBlacklist': self.fatf_blacklist,
            'fatfGreylist': self.fatf_greylist,
            'sanctioned': self.sanctioned,
            'highSecrecy': self.high_secrecy,
            'tier': self.tier.value,
            'risk': _TIER_RISK[self.tier],
        }


def assess_jurisdiction(country: str) -> JurisdictionAssessment:
    """Classify a free-text country or location string

    Matching is whole-word containment, so "Dubai, UAE" is greylisted and
    "Tehran, Iran" is both blacklisted and sanctioned.
    """
    return JurisdictionAssessment(
        country=country,
        fatf_blacklist=contains_term(country, FATF_BLACKLIST) is not None,
        sanctioned=contains_term(country, SANCTIONED_JURISDICTIONS) is not None,
        fatf_greylist=contains_term(country, FATF_GREYLIST) is not None,
        high_secrecy=contains_term(country, HIGH_SECRECY) is not None,
    )


# ============================================
# COUNTRY CODES
# ============================================

COUNTRY_CODES: Dict[str, str] = {
    'united kingdom': 'GB', 'uk': 'GB', 'great britain': 'GB', 'england': 'GB',
    'scotland': 'GB', 'wales': 'GB',
    'united states': 'US', 'usa': 'US', 'us': 'US', 'america': 'US',
    'germany': 'DE', 'deutschland': 'DE', 'france': 'FR', 'italy': 'IT', 'spain': 'ES',
    'netherlands': 'NL', 'holland': 'NL', 'belgium': 'BE', 'switzerland': 'CH',
    'austria': 'AT', 'sweden': 'SE', 'norway': 'NO', 'denmark': 'DK', 'finland': 'FI',
    'ireland': 'IE', 'portugal': 'PT', 'greece': 'GR', 'poland': 'PL',
    'czech republic': 'CZ', 'czechia': 'CZ', 'hungary': 'HU', 'romania': 'RO',
    'bulgaria': 'BG', 'croatia': 'HR', 'slovakia': 'SK', 'slovenia': 'SI',
    'estonia': 'EE', 'latvia': 'LV', 'lithuania': 'LT', 'luxembourg': 'LU',
    'malta': 'MT', 'cyprus': 'CY', 'canada': 'CA', 'australia': 'AU',
    'new zealand': 'NZ', 'japan': 'JP', 'south korea': 'KR', 'korea': 'KR',
    'north korea': 'KP', 'dprk': 'KP',
    'china': 'CN', 'india': 'IN', 'brazil': 'BR', 'mexico': 'MX', 'argentina': 'AR',
    'chile': 'CL', 'colombia': 'CO', 'peru': 'PE', 'south africa': 'ZA',
    'nigeria': 'NG', 'kenya': 'KE', 'egypt': 'EG', 'morocco': 'MA',
    'uae': 'AE', 'united arab emirates': 'AE', 'dubai': 'AE', 'abu dhabi': 'AE',
    'saudi arabia': 'SA', 'qatar': 'QA', 'kuwait': 'KW', 'bahrain': 'BH', 'oman': 'OM',
    'israel': 'IL', 'turkey': 'TR', 'türkiye': 'TR', 'turkiye': 'TR',
    'russia': 'RU', 'russian federation': 'RU', 'ukraine': 'UA', 'belarus': 'BY',
    'singapore': 'SG', 'hong kong': 'HK', 'taiwan': 'TW', 'thailand': 'TH',
    'malaysia': 'MY', 'indonesia': 'ID', 'philippines': 'PH', 'vietnam': 'VN',
    'pakistan': 'PK', 'bangladesh': 'BD', 'sri lanka': 'LK', 'iran': 'IR', 'iraq': 'IQ',
    'syria': 'SY', 'lebanon': 'LB', 'jordan': 'JO', 'cuba': 'CU', 'venezuela': 'VE',
    'myanmar': 'MM', 'burma': 'MM',
    'cayman islands': 'KY', 'british virgin islands': 'VG', 'bvi': 'VG',
    'bermuda': 'BM', 'bahamas': 'BS', 'panama': 'PA',
}

# Longest names first so "south korea" wins over "korea"
_COUNTRY_NAMES_BY_LENGTH = sorted(COUNTRY_CODES, key=len, reverse=True)


def country_to_code(country: Optional[str]) -> Optional[str]:
    """Map a country name (or a bare ISO alpha-2 code) to its ISO code"""
    if not country:
        return None
    stripped = country.strip()
    if re.fullmatch(r'[A-Z]{2}', stripped):
        return stripped
    lowered = stripped.lower()
    if lowered in COUNTRY_CODES:
        return COUNTRY_CODES[lowered]
    found = contains_term(lowered, _COUNTRY_NAMES_BY_LENGTH)
    return COUNTRY_CODES[found] if found else None


# ============================================
# EMAIL
# ============================================

FREE_EMAIL_PROVIDERS = frozenset([
    'gmail.com', 'yahoo.com', 'hotmail.com', 'outlook.com', 'aol.com',
    'icloud.com', 'mail.com', 'protonmail.com', 'zoho.com', 'yandex.com',
    'gmx.com', 'live.com', 'msn.com', 'qq.com', '163.com', '126.com',
    'mail.ru', 'inbox.com', 'fastmail.com',
])

DISPOSABLE_EMAIL_PROVIDERS = frozenset([
    'tempmail.com', 'guerrillamail.com', 'mailinator.com', '10minutemail.com',
    'throwaway.email', 'temp-mail.org', 'fakeinbox.com', 'sharklasers.com',
    'trashmail.com', 'maildrop.cc', 'getairmail.com', 'yopmail.com',
    'tempail.com', 'dispostable.com', 'mintemail.com', 'mt2009.com',
    'tempinbox.com', 'fakemailgenerator.com', 'emailondeck.com',
    'getnada.com', 'mohmal.com', 'tempmailo.com', 'burnermail.io',
    'guerrillamail.info', 'guerrillamail.net', 'guerrillamail.org',
    'spam4.me', 'grr.la', 'mailnesia.com', 'tempr.email',
])

_EMAIL_PATTERN = re.compile(r'^[^@\s]+@([A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)+)$')


@dataclass(frozen=True)
class EmailAssessment:
    email: str
    domain: Optional[str] = None
    well_formed: bool = False
    disposable: bool = False
    free_provider: bool = False

    @property
    def corporate(self) -> bool:
        return self.well_formed and not self.disposable and not self.free_provider

    def to_dict(self) -> Dict[str, Any]:
        return {
            'email': self.email,
            'domain': self.domain,
            'valid': self.well_formed and not self.disposable,
            'disposable': self.disposable,
            'freeProvider': self.free_provider,
            'corporate': self.corporate,
        }


def classify_email(email: str) -> EmailAssessment:
    """Classify an address as disposable, free-provider or corporate"""
    match = _EMAIL_PATTERN.match((email or '').strip())
    if not match:
        return EmailAssessment(email=email)
    domain = match.group(1).lower()
    disposable = (domain in DISPOSABLE_EMAIL_PROVIDERS
                  or 'temp' in domain or 'disposable' in domain)
    return EmailAssessment(
        email=email,
        domain=domain,
        well_formed=True,
        disposable=disposable,
        free_provider=not disposable and domain in FREE_EMAIL_PROVIDERS,
    )


# ============================================
# BANKING
# ============================================

@dataclass(frozen=True)
class SanctionedBank:
    prefix: str
    name: str
    country: str
    reason: str


SANCTIONED_BANKS: List[SanctionedBank] = [
    SanctionedBank('SABR', 'Sberbank', 'Russia', 'EU/US/UK Sanctions'),
    SanctionedBank('VTBR', 'VTB Bank', 'Russia', 'EU/US/UK Sanctions'),
    SanctionedBank('ALFA', 'Alfa-Bank', 'Russia', 'US Sanctions'),
    SanctionedBank('RZBM', 'Raiffeisen Russia', 'Russia', 'Under review'),
    SanctionedBank('PROM', 'Promsvyazbank', 'Russia', 'EU/US Sanctions'),
    SanctionedBank('RSHB', 'Russian Agricultural Bank', 'Russia', 'EU/US Sanctions'),
    SanctionedBank('MBRK', 'Moscow Credit Bank', 'Russia', 'EU Sanctions'),
    SanctionedBank('OWHB', 'Otkritie Bank', 'Russia', 'EU/US Sanctions'),
    SanctionedBank('NOKO', 'Novikombank', 'Russia', 'EU/US Sanctions'),
    SanctionedBank('RSCC', 'Russian National Commercial Bank', 'Russia', 'US Sanctions - Crimea'),
    SanctionedBank('BKCHCNBJ', 'Bank of China', 'China', 'Caution - Russia trade'),
    SanctionedBank('BMJI', 'Bank Melli Iran', 'Iran', 'OFAC SDN List'),
    SanctionedBank('BKSP', 'Bank Sepah', 'Iran', 'OFAC SDN List'),
    SanctionedBank('MEBI', 'Bank Mellat', 'Iran', 'OFAC SDN List'),
    SanctionedBank('BKSA', 'Bank Saderat Iran', 'Iran', 'OFAC SDN List'),
    SanctionedBank('POST', 'Post Bank of Iran', 'Iran', 'OFAC SDN List'),
    SanctionedBank('EDBI', 'Export Development Bank of Iran', 'Iran', 'OFAC SDN List'),
    SanctionedBank('KKBC', 'Korea Kwangson Banking Corp', 'North Korea', 'OFAC SDN List'),
    SanctionedBank('FTRN', 'Foreign Trade Bank of DPRK', 'North Korea', 'OFAC SDN List'),
    SanctionedBank('CBSY', 'Commercial Bank of Syria', 'Syria', 'EU/US Sanctions'),
    SanctionedBank('BPSB', 'Belarusbank', 'Belarus', 'EU/US Sanctions'),
    SanctionedBank('BLBB', 'Belinvestbank', 'Belarus', 'EU Sanctions'),
    SanctionedBank('BNDV', 'Banco de Venezuela', 'Venezuela', 'OFAC Sanctions'),
]

# ISO country codes of comprehensively sanctioned or high-risk banking systems
HIGH_RISK_BANK_COUNTRIES = frozenset(['IR', 'KP', 'SY', 'CU', 'RU', 'BY', 'VE', 'MM'])

# IBAN issuing countries under comprehensive or sectoral banking sanctions
SANCTIONED_IBAN_COUNTRIES = frozenset(['IR', 'KP', 'SY', 'CU', 'RU', 'BY'])


def find_sanctioned_bank(swift: str) -> Optional[SanctionedBank]:
    """Longest sanctioned prefix that the SWIFT/BIC starts with"""
    matches = [b for b in SANCTIONED_BANKS if swift.startswith(b.prefix)]
    return max(matches, key=lambda b: len(b.prefix)) if matches else None


# ============================================
# PORTS (UN/LOCODE)
# ============================================

MAJOR_PORTS: Dict[str, Dict[str, str]] = {
    'CNSHA': {'name': 'Shanghai', 'country': 'China'},
    'CNNGB': {'name': 'Ningbo', 'country': 'China'},
    'CNSHE': {'name': 'Shenzhen', 'country': 'China'},
    'CNQIN': {'name': 'Qingdao', 'country': 'China'},
    'CNTXG': {'name': 'Tianjin', 'country': 'China'},
    'CNGUA': {'name': 'Guangzhou', 'country': 'China'},
    'CNXIA': {'name': 'Xiamen', 'country': 'China'},
    'CNDAL': {'name': 'Dalian', 'country': 'China'},
    'SGSIN': {'name': 'Singapore', 'country': 'Singapore'},
    'KRPUS': {'name': 'Busan', 'country': 'South Korea'},
    'KRINC': {'name': 'Incheon', 'country': 'South Korea'},
    'JPYOK': {'name': 'Yokohama', 'country': 'Japan'},
    'JPKOB': {'name': 'Kobe', 'country': 'Japan'},
    'JPTYO': {'name': 'Tokyo', 'country': 'Japan'},
    'JPNGO': {'name': 'Nagoya', 'country': 'Japan'},
    'AEJEA': {'name': 'Jebel Ali', 'country': 'UAE'},
    'AEDXB': {'name': 'Dubai', 'country': 'UAE'},
    'AEAUH': {'name': 'Abu Dhabi', 'country': 'UAE'},
    'NLRTM': {'name': 'Rotterdam', 'country': 'Netherlands'},
    'NLAMS': {'name': 'Amsterdam', 'country': 'Netherlands'},
    'BEANR': {'name': 'Antwerp', 'country': 'Belgium'},
    'DEHAM': {'name': 'Hamburg', 'country': 'Germany'},
    'DEBRV': {'name': 'Bremerhaven', 'country': 'Germany'},
    'GBFXT': {'name': 'Felixstowe', 'country': 'UK'},
    'GBSOU': {'name': 'Southampton', 'country': 'UK'},
    'GBLGP': {'name': 'London Gateway', 'country': 'UK'},
    'USLAX': {'name': 'Los Angeles', 'country': 'USA'},
    'USLGB': {'name': 'Long Beach', 'country': 'USA'},
    'USNYC': {'name': 'New York', 'country': 'USA'},
    'USSAV': {'name': 'Savannah', 'country': 'USA'},
    'USHOU': {'name': 'Houston', 'country': 'USA'},
    'USSEA': {'name': 'Seattle', 'country': 'USA'},
    'USMIA': {'name': 'Miami', 'country': 'USA'},
    'BRSSZ': {'name': 'Santos', 'country': 'Brazil'},
    'BRPNG': {'name': 'Paranagua', 'country': 'Brazil'},
    'BRRIO': {'name': 'Rio de Janeiro', 'country': 'Brazil'},
    'AUSYD': {'name': 'Sydney', 'country': 'Australia'},
    'AUMEL': {'name': 'Melbourne', 'country': 'Australia'},
    'INNSA': {'name': 'Nhava Sheva (JNPT)', 'country': 'India'},
    'INMUN': {'name': 'Mundra', 'country': 'India'},
    'INMAA': {'name': 'Chennai', 'country': 'India'},
    'MYPKG': {'name': 'Port Klang', 'country': 'Malaysia'},
    'MYTPP': {'name': 'Tanjung Pelepas', 'country': 'Malaysia'},
    'THLCH': {'name': 'Laem Chabang', 'country': 'Thailand'},
    'VNSGN': {'name': 'Ho Chi Minh City', 'country': 'Vietnam'},
    'VNHPH': {'name': 'Haiphong', 'country': 'Vietnam'},
    'IDJKT': {'name': 'Jakarta', 'country': 'Indonesia'},
    'PHMNL': {'name': 'Manila', 'country': 'Philippines'},
    'EGPSD': {'name': 'Port Said', 'country': 'Egypt'},
    'EGALY': {'name': 'Alexandria', 'country': 'Egypt'},
    'ZADUR': {'name': 'Durban', 'country': 'South Africa'},
    'ZACPT': {'name': 'Cape Town', 'country': 'South Africa'},
    'ESVLC': {'name': 'Valencia', 'country': 'Spain'},
    'ESALG': {'name': 'Algeciras', 'country': 'Spain'},
    'ITGOA': {'name': 'Genoa', 'country': 'Italy'},
    'FRLEH': {'name': 'Le Havre', 'country': 'France'},
    'GRPIR': {'name': 'Piraeus', 'country': 'Greece'},
    'TRIST': {'name': 'Istanbul', 'country': 'Turkey'},
    'TRMER': {'name': 'Mersin', 'country': 'Turkey'},
    'RULED': {'name': 'St. Petersburg', 'country': 'Russia'},
    'RUVVO': {'name': 'Vladivostok', 'country': 'Russia'},
    'RUNVS': {'name': 'Novorossiysk', 'country': 'Russia'},
    'CAVAN': {'name': 'Vancouver', 'country': 'Canada'},
    'CAMTR': {'name': 'Montreal', 'country': 'Canada'},
    'MXZLO': {'name': 'Manzanillo', 'country': 'Mexico'},
    'PAONX': {'name': 'Colon', 'country': 'Panama'},
    'PABLB': {'name': 'Balboa', 'country': 'Panama'},
    'COCTG': {'name': 'Cartagena', 'country': 'Colombia'},
    'ARBUE': {'name': 'Buenos Aires', 'country': 'Argentina'},
    'CLSAI': {'name': 'San Antonio', 'country': 'Chile'},
    'NGAPP': {'name': 'Apapa (Lagos)', 'country': 'Nigeria'},
    'MAPTM': {'name': 'Tanger Med', 'country': 'Morocco'},
    'SAJED': {'name': 'Jeddah', 'country': 'Saudi Arabia'},
    'SADMM': {'name': 'Dammam', 'country': 'Saudi Arabia'},
    'OMSLL': {'name': 'Salalah', 'country': 'Oman'},
    'LKCMB': {'name': 'Colombo', 'country': 'Sri Lanka'},
    'PKKHI': {'name': 'Karachi', 'country': 'Pakistan'},
    'BDCGP': {'name': 'Chittagong', 'country': 'Bangladesh'},
    'TWKHH': {'name': 'Kaohsiung', 'country': 'Taiwan'},
    'HKHKG': {'name': 'Hong Kong', 'country': 'Hong Kong'},
}

PORT_ALIASES: Dict[str, str] = {
    'MUMBAI': 'INNSA',
    'NHAVA SHEVA': 'INNSA',
    'JNPT': 'INNSA',
    'TANGIER': 'MAPTM',
    'SUEZ': 'EGPSD',
    'LAGOS': 'NGAPP',
    'APAPA': 'NGAPP',
    'RIO': 'BRRIO',
    'SAO PAULO': 'BRSSZ',
    'SAIGON': 'VNSGN',
    'CHITTAGONG': 'BDCGP',
    'ST PETERSBURG': 'RULED',
    'SAINT PETERSBURG': 'RULED',
}

_LOCODE_PATTERN = re.compile(r'^[A-Z]{2}[A-Z0-9]{3}$')


@dataclass(frozen=True)
class PortVerification:
    query: str
    valid: bool
    locode: Optional[str] = None
    name: Optional[str] = None
    country: Optional[str] = None
    known: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query': self.query,
            'valid': self.valid,
            'locode': self.locode,
            'name': self.name,
            'country': self.country,
            'isKnownPort': self.known,
        }


def verify_port(port: str) -> PortVerification:
    """Resolve a port by UN/LOCODE or by name/alias

    A well-formed LOCODE is valid even when it is not in the table
    (known=False); a free-text name must resolve to a table entry.
    """
    query = (port or '').strip()
    upper = query.upper()
    if not upper:
        return PortVerification(query=query, valid=False)

    if upper in MAJOR_PORTS:
        data = MAJOR_PORTS[upper]
        return PortVerification(query=query, valid=True, locode=upper,
                                name=data['name'], country=data['country'], known=True)

    by_name = _find_port_by_name(query, upper)
    if by_name:
        return by_name

    # Five-letter names such as "DUBAI" also look like a LOCODE, so the
    # name lookup runs first.
    if _LOCODE_PATTERN.match(upper):
        return PortVerification(query=query, valid=True, locode=upper, known=False)

    logger.debug("Port not resolved: %s", upper)
    return PortVerification(query=query, valid=False)


def _find_port_by_name(query: str, upper: str) -> Optional[PortVerification]:
    search = re.sub(r'[^A-Z\s]', ' ', upper)
    search = re.sub(r'\s+', ' ', search).strip()
    if not search:
        return None

    for locode, data in MAJOR_PORTS.items():
        port_name = re.sub(r'[^A-Z\s]', ' ', data['name'].upper())
        port_name = re.sub(r'\s+', ' ', port_name).strip()
        if contains_term(search, [port_name]) or contains_term(port_name, [search]):
            return PortVerification(query=query, valid=True, locode=locode,
                                    name=data['name'], country=data['country'], known=True)

    alias = contains_term(search, sorted(PORT_ALIASES, key=len, reverse=True))
    if alias:
        locode = PORT_ALIASES[alias]
        data = MAJOR_PORTS[locode]
        return PortVerification(query=query, valid=True, locode=locode,
                                name=data['name'], country=data['country'], known=True)
    return None
