"""
Banking and vessel identifier validators

IBAN (ISO 13616 length table plus mod-97 checksum), SWIFT/BIC structure
with sanctioned-bank annotation, and IMO ship number check digits.
Validators never raise on bad input; a malformed identifier comes back
as a result with valid=False and an error message, which the scoring
layer turns into a small penalty.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from rule_tables import HIGH_RISK_BANK_COUNTRIES, SanctionedBank, find_sanctioned_bank


IBAN_LENGTHS: Dict[str, int] = {
    'AL': 28, 'AD': 24, 'AT': 20, 'AZ': 28, 'BH': 22, 'BY': 28, 'BE': 16, 'BA': 20,
    'BR': 29, 'BG': 22, 'CR': 22, 'HR': 21, 'CY': 28, 'CZ': 24, 'DK': 18, 'DO': 28,
    'TL': 23, 'EE': 20, 'EG': 29, 'FO': 18, 'FI': 18, 'FR': 27, 'GE': 22, 'DE': 22,
    'GI': 23, 'GR': 27, 'GL': 18, 'GT': 28, 'HU': 28, 'IS': 26, 'IQ': 23, 'IE': 22,
    'IL': 23, 'IR': 26, 'IT': 27, 'JO': 30, 'KZ': 20, 'XK': 20, 'KW': 30, 'LV': 21,
    'LB': 28, 'LI': 21, 'LT': 20, 'LU': 20, 'MT': 31, 'MR': 27, 'MU': 30, 'MC': 27,
    'MD': 24, 'ME': 22, 'NL': 18, 'MK': 19, 'NO': 15, 'PK': 24, 'PS': 29, 'PL': 28,
    'PT': 25, 'QA': 29, 'RO': 24, 'RU': 33, 'SM': 27, 'SA': 24, 'SC': 31, 'RS': 22,
    'SK': 24, 'SI': 19, 'ES': 24, 'SE': 24, 'CH': 21, 'TN': 24, 'TR': 26, 'UA': 29,
    'AE': 23, 'GB': 22, 'VA': 22, 'VG': 24,
}


# ============================================
# IBAN
# ============================================

@dataclass(frozen=True)
class IbanResult:
    value: str
    valid: bool
    country: Optional[str] = None
    bank_code: Optional[str] = None
    formatted: Optional[str] = None
    error: Optional[str] = None
    expected_length: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'iban': self.value,
            'valid': self.valid,
            'country': self.country,
        }
        if self.valid:
            result['bankCode'] = self.bank_code
            result['formatted'] = self.formatted
        else:
            result['error'] = self.error
            if self.expected_length:
                result['expectedLength'] = self.expected_length
        return result


def iban_checksum_valid(iban: str) -> bool:
    """ISO 13616 mod-97 check on a compact, upper-case IBAN"""
    rearranged = iban[4:] + iban[:4]
    digits = ''.join(str(int(ch, 36)) for ch in rearranged)
    return int(digits) % 97 == 1


def validate_iban(iban: str) -> IbanResult:
    """Validate an IBAN

    Checks, in order: country code known, length for that country,
    two-letter/two-digit prefix, alphanumeric body, mod-97 checksum.
    """
    clean = re.sub(r'\s', '', iban or '').upper()
    country = clean[:2] if len(clean) >= 2 else None

    if not re.fullmatch(r'[A-Z]{2}[0-9]{2}.*', clean):
        return IbanResult(iban, False, country, error='Invalid format')

    expected = IBAN_LENGTHS.get(country)
    if not expected:
        return IbanResult(iban, False, country, error='Unknown country code')

    if len(clean) != expected:
        return IbanResult(iban, False, country, error='Invalid length', expected_length=expected)

    if not clean.isalnum():
        return IbanResult(iban, False, country, error='Invalid characters')

    if not iban_checksum_valid(clean):
        return IbanResult(iban, False, country, error='Checksum mismatch')

    return IbanResult(
        iban,
        True,
        country,
        bank_code=clean[4:8],
        formatted=' '.join(clean[i:i + 4] for i in range(0, len(clean), 4)),
    )


# ============================================
# SWIFT / BIC
# ============================================

@dataclass(frozen=True)
class SwiftResult:
    value: str
    valid: bool
    bank_code: Optional[str] = None
    country_code: Optional[str] = None
    location_code: Optional[str] = None
    branch_code: Optional[str] = None
    sanctioned_bank: Optional[SanctionedBank] = None
    high_risk_country: bool = False
    error: Optional[str] = None

    @property
    def risk_level(self) -> str:
        if self.sanctioned_bank:
            return 'CRITICAL'
        if self.high_risk_country:
            return 'HIGH'
        return 'LOW'

    def to_dict(self) -> Dict[str, Any]:
        if not self.valid:
            return {'swift': self.value, 'valid': False, 'error': self.error}
        return {
            'swift': self.value,
            'valid': True,
            'bankCode': self.bank_code,
            'countryCode': self.country_code,
            'locationCode': self.location_code,
            'branchCode': self.branch_code,
            'sanctioned': self.sanctioned_bank is not None,
            'sanctionInfo': {
                'name': self.sanctioned_bank.name,
                'country': self.sanctioned_bank.country,
                'reason': self.sanctioned_bank.reason,
            } if self.sanctioned_bank else None,
            'highRiskCountry': self.high_risk_country,
            'riskLevel': self.risk_level,
        }


def validate_swift(swift: str) -> SwiftResult:
    """Decompose a SWIFT/BIC code and annotate sanctioned issuers"""
    clean = re.sub(r'\s', '', swift or '').upper()

    if len(clean) not in (8, 11):
        return SwiftResult(swift, False, error='SWIFT must be 8 or 11 characters')
    if not re.fullmatch(r'[A-Z]{4}', clean[:4]):
        return SwiftResult(swift, False, error='Invalid bank code')
    if not re.fullmatch(r'[A-Z]{2}', clean[4:6]):
        return SwiftResult(swift, False, error='Invalid country code')
    if not re.fullmatch(r'[A-Z0-9]{2}', clean[6:8]):
        return SwiftResult(swift, False, error='Invalid location code')
    if len(clean) == 11 and not re.fullmatch(r'[A-Z0-9]{3}', clean[8:]):
        return SwiftResult(swift, False, error='Invalid branch code')

    country = clean[4:6]
    return SwiftResult(
        swift,
        True,
        bank_code=clean[:4],
        country_code=country,
        location_code=clean[6:8],
        branch_code=clean[8:] if len(clean) == 11 else None,
        sanctioned_bank=find_sanctioned_bank(clean),
        high_risk_country=country in HIGH_RISK_BANK_COUNTRIES,
    )


# ============================================
# IMO SHIP NUMBERS
# ============================================

_IMO_PATTERN = re.compile(r'^(?:IMO)?[\s:#-]*(\d{7})$', re.IGNORECASE)


@dataclass(frozen=True)
class ImoResult:
    value: str
    valid: bool
    imo: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'value': self.value, 'valid': self.valid, 'imo': self.imo, 'error': self.error}


def looks_like_imo(value: Optional[str]) -> bool:
    return bool(value and _IMO_PATTERN.match(value.strip()))


def validate_imo(value: str) -> ImoResult:
    """Validate a 7-digit IMO number by its check digit

    The first six digits are weighted 7..2; the last digit of the
    weighted sum must equal the seventh digit (IMO 9074729 is valid).
    """
    match = _IMO_PATTERN.match((value or '').strip())
    if not match:
        return ImoResult(value, False, error='IMO number must be 7 digits')
    digits = match.group(1)
    total = sum(int(d) * w for d, w in zip(digits[:6], range(7, 1, -1)))
    if total % 10 != int(digits[6]):
        return ImoResult(value, False, imo=digits, error='Check digit mismatch')
    return ImoResult(value, True, imo=digits)
