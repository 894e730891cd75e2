"""
Risk score accumulation

Every piece of evidence (a finding, a jurisdiction, an identifier check,
a document rule) is first turned into Signal values by the builders
below, then folded into a RiskState with apply(). apply() is pure: it
returns a new state and never touches the old one, so each run owns its
state and the fold order does not change the result.

Signal keys name the fact, not the message. A key that was already
applied adds its message but not its delta again, so the same fact
reported twice by one source counts once while independent sources
(which use distinct keys) stack.
"""

import logging
from functools import reduce
from typing import Iterable, List, Optional

from config_manager import ScoringConfig
from document_rules import BillOfLading, InstrumentMatch, RuleTier
from rule_tables import (
    EmailAssessment, JurisdictionAssessment, PortVerification,
    SANCTIONED_IBAN_COUNTRIES, country_to_code,
)
from risk_models import (
    CRITICAL_FLAGS, EXPORT_CONTROL_TIERS, POSITIVE_FLAGS,
    Finding, FlagKind, RiskState, Signal,
)
from text_utils import normalize_name
from validators import IbanResult, ImoResult, SwiftResult

logger = logging.getLogger(__name__)


# ============================================
# FOLD
# ============================================

def apply(state: RiskState, signal: Signal) -> RiskState:
    """Return the state with one signal applied"""
    if signal.key in state.applied_keys:
        penalty_total = state.penalty_total
        critical_flags = state.critical_flags
        applied_keys = state.applied_keys
    else:
        penalty_total = state.penalty_total + signal.delta
        critical_flags = state.critical_flags | signal.flags
        applied_keys = state.applied_keys | {signal.key}

    red_flags = state.red_flags
    positive_signals = state.positive_signals
    if signal.positive:
        if signal.message not in positive_signals:
            positive_signals = positive_signals + (signal.message,)
    elif signal.message not in red_flags:
        red_flags = red_flags + (signal.message,)

    return RiskState(
        penalty_total=penalty_total,
        critical_flags=critical_flags,
        red_flags=red_flags,
        positive_signals=positive_signals,
        applied_keys=applied_keys,
    )


def fold(signals: Iterable[Signal], state: Optional[RiskState] = None) -> RiskState:
    return reduce(apply, signals, state or RiskState())


# ============================================
# FINDINGS
# ============================================

_FINDING_MESSAGES = {
    FlagKind.SANCTIONS: "🚨 {entity}: SANCTIONS MATCH - '{label}' ({source})",
    FlagKind.WANTED: "🚨 {entity}: WANTED - '{label}' is on a wanted-persons list ({source})",
    FlagKind.PEP: "⚠️ {entity}: Politically Exposed Person - '{label}' ({source})",
    FlagKind.OFFSHORE_LEAK: "⚠️ {entity}: Found in offshore leaks as '{label}' ({source})",
    FlagKind.DEBARMENT: "🚨 {entity}: DEBARRED - '{label}' ({source})",
    FlagKind.DENIED_PARTY: "🚨 {entity}: DENIED EXPORT PRIVILEGES - '{label}' ({source})",
    FlagKind.ENTITY_LIST: "🚨 {entity}: Entity/Military End User List - export license required ({source})",
    FlagKind.UNVERIFIED_LIST: "⚠️ {entity}: Unverified List - end-use check required ({source})",
    FlagKind.EXPORT_CONTROL: "⚠️ {entity}: Export control listing '{label}' ({source})",
    FlagKind.MISSING_PERSON: "⚠️ {entity}: Missing-person notice '{label}' ({source})",
    FlagKind.REGISTRY_VERIFIED: "✓ {entity}: Active registry record '{label}' ({source})",
    FlagKind.REGISTRY_LISTED: "✓ {entity}: Listed in company index as '{label}' ({source})",
    FlagKind.LEI_VERIFIED: "✓ {entity}: Legal Entity Identifier on record for '{label}' ({source})",
    FlagKind.PUBLIC_FILING: "✓ {entity}: Public filings under '{label}' ({source})",
}


def scored_tags(finding: Finding) -> List[FlagKind]:
    """Tags of a finding that carry a delta; only the worst export-control tier counts"""
    tags = [t for t in finding.tags if t not in EXPORT_CONTROL_TIERS]
    worst_export = next((t for t in EXPORT_CONTROL_TIERS if t in finding.tags), None)
    if worst_export is not None:
        tags.append(worst_export)
    return sorted(tags, key=lambda t: t.value)


def finding_signals(findings: Iterable[Finding], scoring: ScoringConfig) -> List[Signal]:
    signals = []
    for finding in findings:
        for tag in scored_tags(finding):
            message = _FINDING_MESSAGES[tag].format(
                entity=finding.entity.display_name,
                label=finding.candidate.label,
                source=finding.provider,
            )
            signals.append(Signal(
                key=f"finding:{finding.provider}:{finding.entity.normalized_name}:{tag.value}",
                delta=scoring.delta(tag.value),
                message=message,
                positive=tag in POSITIVE_FLAGS,
                flags=frozenset({tag}) & CRITICAL_FLAGS,
            ))
    return signals


# ============================================
# JURISDICTIONS
# ============================================

def _jurisdiction_key(country: str) -> str:
    return country_to_code(country) or normalize_name(country)


def jurisdiction_signals(assessments: Iterable[JurisdictionAssessment], scoring: ScoringConfig) -> List[Signal]:
    """FATF black/grey and secrecy tiers are exclusive; sanctions stack on top"""
    signals = []
    for a in assessments:
        ident = _jurisdiction_key(a.country)
        if a.fatf_blacklist:
            signals.append(Signal(
                f"jurisdiction:fatf_blacklist:{ident}", scoring.delta('fatf_blacklist'),
                f"🚨 {a.country}: FATF BLACKLIST - High-risk jurisdiction with severe AML deficiencies",
            ))
        elif a.fatf_greylist:
            signals.append(Signal(
                f"jurisdiction:fatf_greylist:{ident}", scoring.delta('fatf_greylist'),
                f"⚠️ {a.country}: FATF GREY LIST - Enhanced due diligence required",
            ))
        elif a.high_secrecy:
            signals.append(Signal(
                f"jurisdiction:high_secrecy:{ident}", scoring.delta('high_secrecy'),
                f"⚠️ {a.country}: High financial secrecy jurisdiction - additional verification recommended",
            ))
        if a.sanctioned:
            signals.append(Signal(
                f"jurisdiction:sanctioned:{ident}", scoring.delta('sanctioned_jurisdiction'),
                f"🚨 {a.country}: Comprehensively sanctioned country - transactions may be illegal",
            ))
    return signals


# ============================================
# EMAIL AND DOMAIN
# ============================================

def email_signals(assessment: EmailAssessment, scoring: ScoringConfig) -> List[Signal]:
    address = assessment.email
    if not assessment.well_formed:
        return [Signal(f"email:malformed:{address.lower()}", 0,
                       f"⚠️ {address}: Malformed email address")]
    if assessment.disposable:
        return [Signal(f"email:disposable:{assessment.domain}", scoring.delta('disposable_email'),
                       f"❌ {address}: Disposable email detected - HIGH RISK")]
    if assessment.free_provider:
        return [Signal(f"email:free:{assessment.domain}", scoring.delta('free_email'),
                       f"⚠️ {address}: Free email provider (not corporate)")]
    return [Signal(f"email:corporate:{assessment.domain}", scoring.delta('corporate_email'),
                   f"✓ {address}: Corporate email domain", positive=True)]


def domain_age_signals(domain: str, age_days: Optional[int], scoring: ScoringConfig) -> List[Signal]:
    if age_days is None:
        return []
    cutoffs = scoring.domain_age_days
    key = f"domain_age:{domain}"
    if age_days < cutoffs['critical']:
        return [Signal(key, scoring.delta('domain_age_critical'),
                       f"🚨 {domain}: Domain registered < {cutoffs['critical']} days ago - EXTREME RISK")]
    if age_days < cutoffs['high']:
        return [Signal(key, scoring.delta('domain_age_high'),
                       f"⚠️ {domain}: Domain registered < {cutoffs['high']} days ago - verify legitimacy")]
    if age_days < cutoffs['medium']:
        return [Signal(key, scoring.delta('domain_age_medium'),
                       f"⚠️ {domain}: Domain < 1 year old ({age_days} days)")]
    if age_days >= cutoffs['established']:
        return [Signal(key, scoring.delta('domain_established'),
                       f"✓ {domain}: Established domain ({age_days // 365}+ years)", positive=True)]
    return []


# ============================================
# BANKING
# ============================================

def iban_signals(result: IbanResult, scoring: ScoringConfig) -> List[Signal]:
    if not result.valid:
        return [Signal("iban:invalid", scoring.delta('invalid_iban'),
                       f"❌ Invalid IBAN ({result.error}) - verify banking details")]
    signals = [Signal("iban:valid", 0, f"✓ IBAN validated: {result.country} bank account", positive=True)]
    if result.country in SANCTIONED_IBAN_COUNTRIES:
        signals.append(Signal(
            "iban:sanctioned_country", scoring.delta('iban_sanctioned_country'),
            f"🚨 IBAN issued in sanctioned country ({result.country}) - DO NOT TRANSACT",
        ))
    return signals


def swift_signals(result: SwiftResult, scoring: ScoringConfig) -> List[Signal]:
    if not result.valid:
        return [Signal("swift:invalid", scoring.delta('invalid_swift'),
                       f"❌ Invalid SWIFT/BIC code ({result.error})")]
    bank = result.sanctioned_bank
    if bank:
        return [Signal("swift:sanctioned_bank", scoring.delta('sanctioned_bank'),
                       f"🚨 SANCTIONED BANK: {bank.name} ({bank.country}) - {bank.reason}. DO NOT TRANSACT.")]
    if result.high_risk_country:
        return [Signal("swift:high_risk_country", scoring.delta('high_risk_bank_country'),
                       f"⚠️ Bank in HIGH-RISK jurisdiction ({result.country_code}) - Enhanced due diligence required")]
    return [Signal("swift:valid", 0,
                   f"✓ SWIFT code validated: {result.bank_code} ({result.country_code})", positive=True)]


# ============================================
# DOCUMENTS AND SHIPPING
# ============================================

def instrument_signals(matches: Iterable[InstrumentMatch], scoring: ScoringConfig) -> List[Signal]:
    """HIGH-tier instruments are penalized; VERIFY-tier ones are advisory"""
    signals = []
    for match in matches:
        if match.tier is RuleTier.HIGH:
            signals.append(Signal(f"instrument:{match.code}", scoring.delta('high_risk_instrument'),
                                  f"⚠️ {match.code} detected: {match.note}"))
        elif match.tier is RuleTier.VERIFY:
            signals.append(Signal(f"instrument:{match.code}", 0,
                                  f"📋 {match.code} detected - {match.note}"))
    return signals


def port_signals(role: str, verification: PortVerification, scoring: ScoringConfig) -> List[Signal]:
    """role is 'Loading' or 'Discharge'"""
    key = f"port:{role.lower()}"
    if not verification.valid:
        return [Signal(key, scoring.delta('unverified_port'),
                       f"⚠️ Port of {role} \"{verification.query}\" not found - verify port exists")]
    where = verification.name or verification.locode
    suffix = f" ({verification.country})" if verification.country else " (not in reference table)"
    return [Signal(key, 0, f"✓ Port of {role} verified: {where}{suffix}", positive=True)]


def vessel_signals(result: ImoResult, scoring: ScoringConfig) -> List[Signal]:
    if not result.valid:
        return [Signal("vessel:imo", scoring.delta('invalid_imo'),
                       f"⚠️ Vessel IMO {result.value}: {result.error} - verify vessel exists")]
    return [Signal("vessel:imo", 0, f"✓ Vessel IMO {result.imo} check digit valid", positive=True)]


def bill_of_lading_signals(bill: BillOfLading) -> List[Signal]:
    signals = [Signal("bl:parsed", 0, "✓ Bill of Lading detected and parsed", positive=True)]
    if not bill.get('bl_number'):
        signals.append(Signal("bl:number_missing", 0, "📋 Bill of Lading number not found - request original B/L"))
    if not bill.container_numbers:
        signals.append(Signal("bl:no_containers", 0, "📋 No container numbers found on Bill of Lading"))
    return signals
