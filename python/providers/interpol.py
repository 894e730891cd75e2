"""
Interpol public notices adapters (red: wanted persons, yellow: missing persons)

The notices API is name-only: it returns no relevance score, so hits are
accepted by the matcher on edit distance or containment.
"""

import logging
from typing import Any, List

from providers.base import HttpScreeningProvider
from risk_models import Candidate, EntityKind, FlagKind

logger = logging.getLogger(__name__)


class InterpolNoticeProvider(HttpScreeningProvider):
    entity_kinds = frozenset({EntityKind.PERSON})
    supports_surname_fallback = True
    empty_statuses = frozenset({404})

    BASE_URL = "https://ws-public.interpol.int/notices/v1"
    notice_type = ""
    flag = FlagKind.WANTED

    def query(self, name: str) -> List[Candidate]:
        parts = name.split()
        params = {'name': ' '.join(parts[1:]) or parts[0], 'resultPerPage': 20}
        if len(parts) > 1:
            params['forename'] = parts[0]

        payload = self.request_json('GET', f"{self.BASE_URL}/{self.notice_type}", params=params)
        if payload is None:
            return []
        notices = self._notices(payload)
        return [self._to_candidate(n) for n in notices]

    def _notices(self, payload: Any) -> List[dict]:
        if not isinstance(payload, dict):
            raise self.malformed("expected a JSON object")
        embedded = payload.get('_embedded', {})
        notices = embedded.get('notices', []) if isinstance(embedded, dict) else None
        if not isinstance(notices, list):
            raise self.malformed("'_embedded.notices' is not a list")
        return notices

    def _to_candidate(self, notice: dict) -> Candidate:
        label = ' '.join(p for p in (notice.get('forename'), notice.get('name')) if p)
        if not label:
            raise self.malformed("notice without forename or name")
        return Candidate(
            label=label,
            confidence=None,
            tags=frozenset({self.flag}),
            datasets=(f"interpol_{self.notice_type}_notices",),
            source_meta={
                'entity_id': notice.get('entity_id'),
                'nationalities': notice.get('nationalities') or [],
                'date_of_birth': notice.get('date_of_birth'),
                'url': (notice.get('_links') or {}).get('self', {}).get('href'),
            },
        )


class InterpolRedNoticeProvider(InterpolNoticeProvider):
    name = "interpol_red"
    label = "Interpol Red Notices"
    notice_type = "red"
    flag = FlagKind.WANTED


class InterpolYellowNoticeProvider(InterpolNoticeProvider):
    name = "interpol_yellow"
    label = "Interpol Yellow Notices"
    notice_type = "yellow"
    flag = FlagKind.MISSING_PERSON
