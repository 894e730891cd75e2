"""
Declarative document rules

Financial instrument detection and bill of lading field extraction over
already-extracted document text. Each rule is a table row
(field name, patterns, risk tier) and every row is evaluated the same
way; adding an instrument or a field means adding a row.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Tuple

logger = logging.getLogger(__name__)


class RuleTier(str, Enum):
    HIGH = "HIGH"        # penalized on detection
    VERIFY = "VERIFY"    # advisory: must be verified independently
    SCREEN = "SCREEN"    # extracted value is a party to screen
    INFO = "INFO"        # recorded only


# ============================================
# FINANCIAL INSTRUMENTS
# ============================================

@dataclass(frozen=True)
class InstrumentRule:
    code: str
    name: str
    patterns: Tuple[str, ...]
    tier: RuleTier
    note: str
    excludes: Tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        if not any(re.search(p, text, re.IGNORECASE) for p in self.patterns):
            return False
        return not any(re.search(p, text, re.IGNORECASE) for p in self.excludes)


INSTRUMENT_RULES: Tuple[InstrumentRule, ...] = (
    InstrumentRule(
        'SBLC', 'Standby Letter of Credit',
        (r'\bSBLC\b', r'\bSTAND-?BY LETTER OF CREDIT\b', r'\bSTANDBY L/C\b'),
        RuleTier.VERIFY,
        'Verify issuing bank is legitimate and not sanctioned. Check SWIFT code.',
    ),
    InstrumentRule(
        'DLC', 'Documentary Letter of Credit',
        (r'\bDOCUMENTARY (?:LETTER OF CREDIT|L/C)\b', r'\bIRREVOCABLE LETTER OF CREDIT\b',
         r'\bLETTER OF CREDIT\b'),
        RuleTier.VERIFY,
        'Verify issuing bank, confirming bank, and advising bank details.',
        excludes=(r'\bSTAND-?BY\b',),
    ),
    InstrumentRule(
        'BCL', 'Bank Comfort Letter',
        (r'\bBCL\b', r'\bBANK COMFORT LETTER\b', r'\bBANK CONFIRMATION LETTER\b'),
        RuleTier.HIGH,
        'BCLs are often used in scams. Verify directly with issuing bank via independent contact.',
    ),
    InstrumentRule(
        'POF', 'Proof of Funds',
        (r'\bPOF\b', r'\bPROOF OF FUNDS?\b', r'\bBANK STATEMENT\b'),
        RuleTier.VERIFY,
        'Verify directly with bank. Check account holder matches buyer/seller.',
    ),
    InstrumentRule(
        'ESCROW', 'Escrow Account',
        (r'\bESCROW\b',),
        RuleTier.VERIFY,
        'Verify escrow agent is legitimate. Check with local bar association if attorney.',
    ),
    InstrumentRule(
        'BG', 'Bank Guarantee',
        (r'\bBANK GUARANTEE\b', r'\bBG\b'),
        RuleTier.VERIFY,
        'Verify via SWIFT MT760/MT799. Check issuing bank is not sanctioned.',
    ),
    InstrumentRule(
        'PB', 'Performance Bond',
        (r'\bPERFORMANCE (?:BOND|GUARANTEE)\b', r'\bPB\b'),
        RuleTier.VERIFY,
        'Verify bond issuer is legitimate surety company or bank.',
    ),
    InstrumentRule(
        'MT760', 'SWIFT MT760 Bank Guarantee',
        (r'\bMT\s?760\b',),
        RuleTier.VERIFY,
        'Verify via independent SWIFT trace. Check TRN (Transaction Reference Number).',
    ),
    InstrumentRule(
        'MT799', 'SWIFT MT799 Free Format Message',
        (r'\bMT\s?799\b',),
        RuleTier.HIGH,
        'MT799 is just a message, NOT a guarantee. Often misrepresented in scams.',
    ),
)


@dataclass(frozen=True)
class InstrumentMatch:
    code: str
    name: str
    tier: RuleTier
    note: str

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.code, 'name': self.name, 'risk': self.tier.value, 'note': self.note}


def detect_instruments(text: Optional[str]) -> List[InstrumentMatch]:
    """Every instrument rule whose patterns fire on the text, in table order"""
    if not text:
        return []
    return [
        InstrumentMatch(rule.code, rule.name, rule.tier, rule.note)
        for rule in INSTRUMENT_RULES
        if rule.matches(text)
    ]


# ============================================
# BILL OF LADING
# ============================================

BL_INDICATORS = (
    'BILL OF LADING', 'B/L', 'BL NO', 'SHIPPER', 'CONSIGNEE',
    'PORT OF LOADING', 'PORT OF DISCHARGE', 'NOTIFY PARTY',
    'OCEAN BILL', 'SEA WAYBILL', 'MASTER B/L', 'HOUSE B/L',
)


@dataclass(frozen=True)
class FieldRule:
    field_name: str
    patterns: Tuple[str, ...]
    risk_tier: RuleTier

    def compiled(self) -> List[Pattern]:
        return [re.compile(p, re.IGNORECASE | re.MULTILINE) for p in self.patterns]

    def extract(self, text: str) -> Optional[str]:
        for pattern in self.compiled():
            match = pattern.search(text)
            if match:
                value = match.group(1).strip().strip('"\'').rstrip(' ,;.')
                if value:
                    return value
        return None


BL_FIELD_RULES: Tuple[FieldRule, ...] = (
    FieldRule('bl_number', (
        r'\b(?:B/L|BL|BILL OF LADING)\s*(?:NO\.?|NUMBER|#)\s*:?\s*([A-Z0-9][A-Z0-9\-/]*)',
        r'\bBOOKING\s*(?:NO\.?|#)?\s*:?\s*([A-Z0-9][A-Z0-9\-/]*)',
    ), RuleTier.INFO),
    FieldRule('shipper', (
        r'^\s*SHIPPER(?:\s*/\s*EXPORTER)?[ \t]*:?[ \t]*\n?[ \t]*([^\n]+)',
    ), RuleTier.SCREEN),
    FieldRule('consignee', (
        r'^\s*CONSIGNEE[ \t]*:?[ \t]*\n?[ \t]*([^\n]+)',
    ), RuleTier.SCREEN),
    FieldRule('notify_party', (
        r'^\s*NOTIFY(?:\s+PARTY)?[ \t]*:?[ \t]*\n?[ \t]*([^\n]+)',
    ), RuleTier.SCREEN),
    FieldRule('vessel', (
        r'\b(?:OCEAN|MOTHER)\s+VESSEL[ \t]*:?[ \t]*["\']?([A-Z][A-Z0-9 \-\.]*?)["\']?[ \t]*(?=\bVOY|\bIMO\b|$)',
        r'\b(?:VESSEL(?:\s+NAME)?|M/V|M\.V\.)[ \t]*:?[ \t]*["\']?([A-Z][A-Z0-9 \-\.]*?)["\']?[ \t]*(?=\bVOY|\bIMO\b|$)',
    ), RuleTier.VERIFY),
    FieldRule('vessel_imo', (
        r'\bIMO\s*(?:NO\.?|NUMBER|#)?\s*:?\s*(\d{7})\b',
    ), RuleTier.VERIFY),
    FieldRule('voyage', (
        r'\b(?:VOYAGE|VOY)\.?\s*(?:NO\.?|NUMBER|#)?\s*:?\s*([A-Z0-9][A-Z0-9\-/]*)',
    ), RuleTier.INFO),
    FieldRule('port_of_loading', (
        r'\b(?:PORT\s+OF\s+LOADING|POL|LOADING\s+PORT)\b[ \t]*:?[ \t]*([^\n]+)',
    ), RuleTier.VERIFY),
    FieldRule('port_of_discharge', (
        r'\b(?:PORT\s+OF\s+DISCHARGE|POD|DISCHARGE\s+PORT|DESTINATION\s+PORT)\b[ \t]*:?[ \t]*([^\n]+)',
    ), RuleTier.VERIFY),
    FieldRule('captain', (
        r'\b(?:MASTER|CAPTAIN|CAPT\.?)(?:\s+NAME)?[ \t]*:[ \t]*([A-Za-z][A-Za-z \.\-]*)',
    ), RuleTier.SCREEN),
    FieldRule('carrier', (
        r'\b(?:CARRIER|SHIPPING\s+LINE)[ \t]*:[ \t]*([^\n]+)',
    ), RuleTier.INFO),
    FieldRule('gross_weight', (
        r'\b(?:GROSS\s+WEIGHT|GR\.?\s*WT\.?)[ \t]*:?[ \t]*([\d][\d,\.]*(?:[ \t]*(?:KGS?|MT|TONS?|LBS))?)',
    ), RuleTier.INFO),
)

_CONTAINER_PATTERN = re.compile(r'\b([A-Z]{4}\d{7})\b')
_SEAL_PATTERN = re.compile(r'\bSEAL\s*(?:NO\.?|#)?\s*:?\s*([A-Z0-9][A-Z0-9\-]*)', re.IGNORECASE)

FREIGHT_TERMS = (
    ('FREIGHT PREPAID', 'PREPAID'),
    ('FREIGHT COLLECT', 'COLLECT'),
    ('CIF', 'CIF'),
    ('FOB', 'FOB'),
    ('CFR', 'CFR'),
    ('C&F', 'CFR'),
)


@dataclass(frozen=True)
class BillOfLading:
    """Fields extracted from bill of lading text"""
    fields: Dict[str, str] = field(default_factory=dict)
    container_numbers: Tuple[str, ...] = ()
    seal_numbers: Tuple[str, ...] = ()
    freight_terms: Optional[str] = None

    def get(self, name: str) -> Optional[str]:
        return self.fields.get(name)

    def fields_by_tier(self, tier: RuleTier) -> List[Tuple[str, str]]:
        tiers = {rule.field_name: rule.risk_tier for rule in BL_FIELD_RULES}
        return [(name, value) for name, value in self.fields.items() if tiers.get(name) == tier]

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'found': True}
        for rule in BL_FIELD_RULES:
            result[rule.field_name] = self.fields.get(rule.field_name)
        result['container_numbers'] = list(self.container_numbers)
        result['seal_numbers'] = list(self.seal_numbers)
        result['freight_terms'] = self.freight_terms
        return result


def is_bill_of_lading(text: Optional[str]) -> bool:
    if not text:
        return False
    upper = text.upper()
    return any(indicator in upper for indicator in BL_INDICATORS)


def extract_bill_of_lading(text: Optional[str]) -> Optional[BillOfLading]:
    """Apply every field rule to text that looks like a bill of lading

    Returns None when no bill of lading indicator is present.
    """
    if not is_bill_of_lading(text):
        return None

    fields = {}
    for rule in BL_FIELD_RULES:
        value = rule.extract(text)
        if value:
            fields[rule.field_name] = value

    containers = tuple(dict.fromkeys(_CONTAINER_PATTERN.findall(text)))
    seals = tuple(dict.fromkeys(s.upper() for s in _SEAL_PATTERN.findall(text)))

    upper = text.upper()
    freight_terms = next(
        (term for marker, term in FREIGHT_TERMS if re.search(r'\b' + re.escape(marker) + r'(?!\w)', upper)),
        None
    )

    logger.debug("Bill of lading extracted: %d fields, %d containers", len(fields), len(containers))
    return BillOfLading(
        fields=fields,
        container_numbers=containers,
        seal_numbers=seals,
        freight_terms=freight_terms,
    )
