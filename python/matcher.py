"""
Fuzzy identity matching

Decides which provider candidates refer to the entity being screened and
turns the survivors into findings. Scored candidates are accepted on
confidence (with a lower bar for authoritative sanctions and wanted
lists); name-only registry hits are accepted on edit distance or
substring containment either way.
"""

import logging
from typing import Iterable, List, Optional

from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein

from config_manager import MatchingConfig
from risk_models import (
    BLACK_FLAGS, Candidate, Entity, EntityKind, Finding, FlagKind, severity_for,
)
from text_utils import normalize_name

logger = logging.getLogger(__name__)


class FuzzyIdentityMatcher:
    """Filters raw candidates into findings"""

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()
        self._authoritative = [d.lower() for d in self.config.authoritative_datasets]

    # ------------------------------------------------------------------
    # Acceptance
    # ------------------------------------------------------------------

    def is_authoritative(self, candidate: Candidate) -> bool:
        """Sanctions or wanted hit from a dataset on the authoritative list"""
        if not candidate.tags & BLACK_FLAGS:
            return False
        datasets = [d.lower() for d in candidate.datasets]
        return any(key in ds for ds in datasets for key in self._authoritative)

    def name_matches(self, query: str, label: str, max_edit_distance: int) -> bool:
        """Edit distance below the limit, or one name contained in the other"""
        query = normalize_name(query)
        label = normalize_name(label)
        if not query or not label:
            return False
        if Levenshtein.distance(query, label) < max_edit_distance:
            return True
        return query in label or label in query

    def accepts(self, entity: Entity, candidate: Candidate, max_edit_distance: Optional[int] = None) -> bool:
        if candidate.confidence is None:
            limit = max_edit_distance or self.config.max_edit_distance
            return self.name_matches(entity.normalized_name, candidate.label, limit)
        if candidate.confidence >= self.config.baseline_threshold:
            return True
        return (self.is_authoritative(candidate)
                and candidate.confidence >= self.config.authoritative_threshold)

    @staticmethod
    def match_score(entity: Entity, candidate: Candidate) -> float:
        return fuzz.token_sort_ratio(entity.normalized_name, normalize_name(candidate.label)) / 100.0

    # ------------------------------------------------------------------
    # Surname fallback
    # ------------------------------------------------------------------

    def fallback_query(self, entity: Entity) -> Optional[str]:
        """Surname to query when a multi-word person's full name found nothing"""
        if not self.config.surname_fallback or entity.kind is not EntityKind.PERSON:
            return None
        tokens = entity.normalized_name.split()
        if len(tokens) < 2:
            return None
        return tokens[-1]

    @staticmethod
    def fallback_accepts(entity: Entity, candidate: Candidate) -> bool:
        """Both forename and surname must appear in the hit label, in any order"""
        tokens = entity.normalized_name.split()
        label = normalize_name(candidate.label)
        return tokens[0] in label and tokens[-1] in label

    # ------------------------------------------------------------------
    # Findings
    # ------------------------------------------------------------------

    def to_findings(self, entity: Entity, provider: str, candidate: Candidate) -> List[Finding]:
        """One finding per candidate, plus a separate one for PEP status"""
        score = self.match_score(entity, candidate)
        findings = []
        other_tags = candidate.tags - {FlagKind.PEP}
        if other_tags or not candidate.tags:
            findings.append(Finding(
                entity=entity,
                provider=provider,
                candidate=candidate,
                match_score=score,
                severity=severity_for(other_tags),
                tags=frozenset(other_tags),
            ))
        if FlagKind.PEP in candidate.tags:
            findings.append(Finding(
                entity=entity,
                provider=provider,
                candidate=candidate,
                match_score=score,
                severity=severity_for({FlagKind.PEP}),
                tags=frozenset({FlagKind.PEP}),
            ))
        return findings

    def match(
        self,
        entity: Entity,
        provider: str,
        candidates: Iterable[Candidate],
        max_edit_distance: Optional[int] = None,
        fallback: bool = False,
    ) -> List[Finding]:
        """Filter candidates for one entity/provider pair into findings

        Args:
            entity: Entity that was screened
            provider: Provider name recorded on each finding
            candidates: Raw candidates the provider returned
            max_edit_distance: Provider-specific limit for name-only hits
            fallback: Candidates came from a surname-only query
        """
        findings: List[Finding] = []
        for candidate in candidates:
            accepted = (self.fallback_accepts(entity, candidate) if fallback
                        else self.accepts(entity, candidate, max_edit_distance))
            if accepted:
                findings.extend(self.to_findings(entity, provider, candidate))
            else:
                logger.debug("Rejected candidate from %s for %s (confidence=%s)",
                             provider, entity.id, candidate.confidence)
        return findings
