"""
Core data model for the Trade Diligence Risk Engine

Case input, entities, provider candidates, findings, score signals,
the per-run risk state and the final verdict. Everything a provider,
the matcher or the accumulator passes around is defined here so the
modules agree on one vocabulary.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple


# ============================================
# ERRORS
# ============================================

class CaseValidationError(ValueError):
    """Raised when a Case cannot be screened at all

    Attributes:
        field: The input field that caused the rejection
        code: Error code for programmatic handling
        suggestion: Optional hint for fixing the input
    """
    def __init__(self, message: str, field: str = "case", code: str = "INVALID_CASE", suggestion: str = ""):
        self.field = field
        self.code = code
        self.suggestion = suggestion
        super().__init__(message)


# ============================================
# ENUMS
# ============================================

class FlagKind(str, Enum):
    """Closed set of risk tags a provider may attach to a candidate"""
    SANCTIONS = "sanctions"
    WANTED = "wanted"
    PEP = "pep"
    OFFSHORE_LEAK = "offshore_leak"
    DEBARMENT = "debarment"
    DENIED_PARTY = "denied_party"
    ENTITY_LIST = "entity_list"
    UNVERIFIED_LIST = "unverified_list"
    EXPORT_CONTROL = "export_control"
    MISSING_PERSON = "missing_person"
    REGISTRY_VERIFIED = "registry_verified"
    REGISTRY_LISTED = "registry_listed"
    LEI_VERIFIED = "lei_verified"
    PUBLIC_FILING = "public_filing"


# Flags that force at least RED
CRITICAL_FLAGS: FrozenSet[FlagKind] = frozenset({
    FlagKind.SANCTIONS, FlagKind.WANTED, FlagKind.OFFSHORE_LEAK, FlagKind.DEBARMENT,
})

# Flags that force BLACK
BLACK_FLAGS: FrozenSet[FlagKind] = frozenset({FlagKind.SANCTIONS, FlagKind.WANTED})

# Export-control sub-lists, most severe first. Only the worst one counts per finding.
EXPORT_CONTROL_TIERS: Tuple[FlagKind, ...] = (
    FlagKind.DENIED_PARTY, FlagKind.ENTITY_LIST, FlagKind.EXPORT_CONTROL, FlagKind.UNVERIFIED_LIST,
)

POSITIVE_FLAGS: FrozenSet[FlagKind] = frozenset({
    FlagKind.REGISTRY_VERIFIED, FlagKind.REGISTRY_LISTED, FlagKind.LEI_VERIFIED, FlagKind.PUBLIC_FILING,
})


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    POSITIVE = "POSITIVE"


def severity_for(tags: Iterable[FlagKind]) -> Severity:
    """Severity of a finding derived from its tags"""
    tags = frozenset(tags)
    if tags & CRITICAL_FLAGS or FlagKind.DENIED_PARTY in tags:
        return Severity.CRITICAL
    if tags & {FlagKind.ENTITY_LIST, FlagKind.EXPORT_CONTROL, FlagKind.MISSING_PERSON}:
        return Severity.HIGH
    if tags & {FlagKind.PEP, FlagKind.UNVERIFIED_LIST}:
        return Severity.MEDIUM
    if tags and tags <= POSITIVE_FLAGS:
        return Severity.POSITIVE
    return Severity.LOW


class RiskLevel(IntEnum):
    """Verdict levels, ordered GREEN < YELLOW < RED < BLACK"""
    GREEN = 1
    YELLOW = 2
    RED = 3
    BLACK = 4


class EntityKind(str, Enum):
    COMPANY = "company"
    PERSON = "person"
    VESSEL = "vessel"


# ============================================
# INPUT
# ============================================

@dataclass(frozen=True)
class PartyRecord:
    """One party of the transaction as supplied by the caller"""
    company: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    country: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PartyRecord':
        if not isinstance(data, dict):
            raise CaseValidationError(
                "Each entry of allParties must be an object",
                field="allParties",
                code="INVALID_PARTY",
                suggestion="Use objects such as {\"company\": \"...\", \"name\": \"...\"}"
            )
        return cls(
            company=_clean(data.get('company')),
            name=_clean(data.get('name')),
            role=_clean(data.get('role')),
            country=_clean(data.get('country')),
            email=_clean(data.get('email')),
        )


@dataclass(frozen=True)
class Case:
    """Immutable input aggregate of a diligence request"""
    parties: Tuple[PartyRecord, ...] = ()
    company_name: Optional[str] = None
    email: Optional[str] = None
    country: Optional[str] = None
    representative: Optional[str] = None
    iban: Optional[str] = None
    swift: Optional[str] = None
    vessel_identifier: Optional[str] = None
    document_text: Optional[str] = None
    jurisdictions: Tuple[str, ...] = ()
    port_of_loading: Optional[str] = None
    port_of_discharge: Optional[str] = None
    captain: Optional[str] = None
    case_id: str = field(default_factory=lambda: f"CASE-{uuid.uuid4().hex[:12]}")

    def validate(self) -> None:
        """Reject a case that carries nothing screenable

        Raises:
            CaseValidationError: if company name, email and parties are all missing
        """
        if not self.company_name and not self.email and not self.parties:
            raise CaseValidationError(
                "Case must include a company name, an email or at least one party",
                field="companyName",
                code="MISSING_IDENTITY",
                suggestion="Provide companyName, email or a non-empty allParties list"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Case':
        """Build a Case from the camelCase request JSON"""
        if not isinstance(data, dict):
            raise CaseValidationError("Case payload must be a JSON object", code="INVALID_PAYLOAD")

        raw_parties = data.get('allParties') or []
        if not isinstance(raw_parties, list):
            raise CaseValidationError(
                "allParties must be a list",
                field="allParties",
                code="INVALID_PARTY",
            )

        raw_jurisdictions = data.get('jurisdictions') or []
        if isinstance(raw_jurisdictions, str):
            raw_jurisdictions = [raw_jurisdictions]

        kwargs = dict(
            parties=tuple(PartyRecord.from_dict(p) for p in raw_parties),
            company_name=_clean(data.get('companyName')),
            email=_clean(data.get('email')),
            country=_clean(data.get('country')),
            representative=_clean(data.get('representative')),
            iban=_clean(data.get('iban')),
            swift=_clean(data.get('swift')),
            vessel_identifier=_clean(
                data.get('vesselIdentifier') or data.get('vesselIMO') or data.get('vesselName')
            ),
            document_text=data.get('documentText') or None,
            jurisdictions=tuple(j for j in (_clean(j) for j in raw_jurisdictions) if j),
            port_of_loading=_clean(data.get('portOfLoading')),
            port_of_discharge=_clean(data.get('portOfDischarge')),
            captain=_clean(data.get('captain')),
        )
        if data.get('caseId'):
            kwargs['case_id'] = str(data['caseId'])

        case = cls(**kwargs)
        case.validate()
        return case


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# ============================================
# SCREENING
# ============================================

@dataclass(frozen=True)
class Entity:
    """A normalized party to be screened. Identity is normalized_name."""
    id: str
    display_name: str
    normalized_name: str
    kind: EntityKind
    role: str = ""
    country: Optional[str] = None
    email: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.display_name,
            'type': self.kind.value,
            'role': self.role,
            'country': self.country,
            'email': self.email,
        }


@dataclass(frozen=True)
class Candidate:
    """A raw hit returned by a provider, already normalized at its boundary

    confidence is None for name-only registries that do not score hits.
    """
    label: str
    confidence: Optional[float] = None
    tags: FrozenSet[FlagKind] = frozenset()
    datasets: Tuple[str, ...] = ()
    source_meta: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'confidence': round(self.confidence, 3) if self.confidence is not None else None,
            'tags': sorted(t.value for t in self.tags),
            'datasets': list(self.datasets),
            'source': self.source_meta,
        }


@dataclass(frozen=True)
class Finding:
    """An accepted candidate for one entity from one provider"""
    entity: Entity
    provider: str
    candidate: Candidate
    match_score: float
    severity: Severity
    tags: FrozenSet[FlagKind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity': self.entity.display_name,
            'entity_type': self.entity.kind.value,
            'provider': self.provider,
            'matched_name': self.candidate.label,
            'match_score': round(self.match_score, 3),
            'severity': self.severity.value,
            'tags': sorted(t.value for t in self.tags),
            'candidate': self.candidate.to_dict(),
        }


# ============================================
# SCORING
# ============================================

@dataclass(frozen=True)
class Signal:
    """One unit of evidence folded into the risk state

    delta is added to the penalty total (negative for bonuses). A key that
    was already applied to a state contributes its message only.
    """
    key: str
    delta: int
    message: str
    positive: bool = False
    flags: FrozenSet[FlagKind] = frozenset()


@dataclass(frozen=True)
class RiskState:
    """Per-run accumulator state. Replaced, never mutated, by accumulator.apply"""
    penalty_total: int = 0
    critical_flags: FrozenSet[FlagKind] = frozenset()
    red_flags: Tuple[str, ...] = ()
    positive_signals: Tuple[str, ...] = ()
    applied_keys: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class Verdict:
    """Final, immutable outcome of a diligence run"""
    case_id: str
    level: RiskLevel
    score: int
    red_flags: Tuple[str, ...] = ()
    positive_signals: Tuple[str, ...] = ()
    checked_sources: Tuple[str, ...] = ()
    unavailable_sources: Tuple[str, ...] = ()
    findings: Tuple[Finding, ...] = ()
    entities: Tuple[Entity, ...] = ()
    jurisdictions: Tuple[Dict[str, Any], ...] = ()
    financial: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
    documents: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
    contacts: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
    issued_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def adverse_findings(self) -> List[Finding]:
        return [f for f in self.findings
                if f.tags and f.severity is not Severity.POSITIVE and f.tags != frozenset({FlagKind.PEP})]

    @property
    def pep_findings(self) -> List[Finding]:
        return [f for f in self.findings if FlagKind.PEP in f.tags]

    def to_dict(self) -> Dict[str, Any]:
        adverse = self.adverse_findings
        peps = self.pep_findings
        return {
            'caseId': self.case_id,
            'riskLevel': self.level.name,
            'riskScore': self.score,
            'redFlags': list(self.red_flags),
            'positiveSignals': list(self.positive_signals),
            'databasesChecked': list(self.checked_sources),
            'databasesUnavailable': list(self.unavailable_sources),
            'sanctions': {
                'found': bool(adverse),
                'matches': [f.to_dict() for f in adverse],
                'lists': sorted({f.provider for f in adverse}),
            },
            'pep': {
                'found': bool(peps),
                'matches': [f.to_dict() for f in peps],
            },
            'findings': [f.to_dict() for f in self.findings],
            'entities': [e.to_dict() for e in self.entities],
            'jurisdiction': list(self.jurisdictions),
            'financial': self.financial,
            'documents': self.documents,
            'contacts': self.contacts,
            'issuedAt': self.issued_at,
        }
