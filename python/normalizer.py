"""
Entity normalization and deduplication

Turns a Case (and any bill of lading extracted from its document text)
into the ordered, duplicate-free list of entities to screen. Identity is
the normalized name: the first occurrence of a name wins and keeps its
position.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from config_manager import MatchingConfig
from document_rules import BillOfLading, RuleTier
from risk_models import Case, Entity, EntityKind
from text_utils import contains_term, normalize_name, sanitize_for_logging
from validators import looks_like_imo, validate_imo

logger = logging.getLogger(__name__)

# Bill of lading placeholders that are not parties
NON_PARTY_VALUES = frozenset([
    'to order', 'to the order of shipper', 'to order of shipper', 'same as consignee',
    'same as above', 'n a', 'na', 'none', 'tbd', 'tba',
])

_BL_ROLES = {
    'shipper': 'Shipper',
    'consignee': 'Consignee',
    'notify_party': 'Notify Party',
}


class EntityNormalizer:
    """Builds the deduplicated entity set of a case"""

    def __init__(self, config: Optional[MatchingConfig] = None):
        config = config or MatchingConfig()
        self.legal_suffixes: List[str] = sorted(
            {normalize_name(s) for s in config.legal_suffixes if normalize_name(s)},
            key=len, reverse=True
        )

    def is_company_name(self, name: str) -> bool:
        """True when the name carries a legal-form or corporate keyword"""
        return contains_term(normalize_name(name), self.legal_suffixes) is not None

    def normalize(self, case: Case, bill_of_lading: Optional[BillOfLading] = None) -> List[Entity]:
        """Return the ordered entity set of a case

        Order: each party's company then its person name, the standalone
        company name, the representative, the captain, bill of lading
        parties, then the vessel. Empty names are skipped silently.
        """
        raw: List[Tuple[str, EntityKind, str, Optional[str], Optional[str]]] = []

        for party in case.parties:
            country = party.country or case.country
            if party.company:
                kind = EntityKind.COMPANY if self.is_company_name(party.company) else EntityKind.PERSON
                raw.append((party.company, kind, party.role or 'Party', country, party.email))
            if party.name:
                raw.append((party.name, EntityKind.PERSON, party.role or 'Party', country, party.email))

        if case.company_name:
            raw.append((case.company_name, EntityKind.COMPANY, 'Primary', case.country, case.email))
        if case.representative:
            raw.append((case.representative, EntityKind.PERSON, 'Representative', case.country, None))

        captain = case.captain or (bill_of_lading.get('captain') if bill_of_lading else None)
        if captain:
            raw.append((captain, EntityKind.PERSON, 'Captain', None, None))

        if bill_of_lading:
            for field_name, value in bill_of_lading.fields_by_tier(RuleTier.SCREEN):
                if field_name not in _BL_ROLES or normalize_name(value) in NON_PARTY_VALUES:
                    continue
                kind = EntityKind.COMPANY if self.is_company_name(value) else EntityKind.PERSON
                raw.append((value, kind, _BL_ROLES[field_name], None, None))

        vessel = self._vessel_identifier(case, bill_of_lading)
        if vessel:
            raw.append((vessel, EntityKind.VESSEL, 'Vessel', None, None))

        entities = self._build(raw)
        logger.info("Normalized case %s into %d entities", case.case_id, len(entities))
        return entities

    @staticmethod
    def _vessel_identifier(case: Case, bill_of_lading: Optional[BillOfLading]) -> Optional[str]:
        value = case.vessel_identifier
        if not value and bill_of_lading:
            value = bill_of_lading.get('vessel_imo') or bill_of_lading.get('vessel')
        if value and looks_like_imo(value):
            imo = validate_imo(value).imo
            return f"IMO {imo}"
        return value

    @staticmethod
    def _build(raw: Iterable[Tuple[str, EntityKind, str, Optional[str], Optional[str]]]) -> List[Entity]:
        seen = set()
        entities: List[Entity] = []
        for display, kind, role, country, email in raw:
            normalized = normalize_name(display)
            if not normalized:
                continue
            if normalized in seen:
                logger.debug("Dropping duplicate entity: %s", sanitize_for_logging(display))
                continue
            seen.add(normalized)
            entities.append(Entity(
                id=f"E{len(entities) + 1}",
                display_name=display.strip(),
                normalized_name=normalized,
                kind=kind,
                role=role,
                country=country,
                email=email,
            ))
        return entities

    @classmethod
    def dedupe(cls, entities: Sequence[Entity]) -> List[Entity]:
        """Re-normalize an entity list; a no-op on normalize() output"""
        return cls._build(
            (e.display_name, e.kind, e.role, e.country, e.email) for e in entities
        )
