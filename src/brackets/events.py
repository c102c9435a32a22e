"""
Append-only match event log and the in-process subscriber feed.

Events are never edited or removed. Each one records the revision it was
applied against and the revision it produced, which is what lets undo
detect that something else changed the match in between.
"""
import logging
import threading
from typing import Callable, Dict, List

from .errors import ValidationError
from .models import SCHEDULED, LIVE, REVERT, is_playable
from .sport_scoring import describe_score_change

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
SCORE_STATUSES = (SCHEDULED, LIVE)


class EventFeed:
    """Per-match callback registry.

    ``publish`` is only called from after-commit hooks, which run while the
    store lock is held, so callbacks for one match fire in commit order.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, match_id: str, callback: Callable) -> Callable:
        """Register ``callback(event)``; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.setdefault(match_id, []).append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(match_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(match_id, None)
        return unsubscribe

    def publish(self, event: Dict):
        with self._lock:
            callbacks = list(self._subscribers.get(event['match_id'], []))
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception('Subscriber failed for match %s', event['match_id'])


def append_event(txn, match: Dict, kind: str, actor_id, payload: Dict,
                 revision: int, now: str, reverts=None) -> Dict:
    """Write a new event row; ``revision`` is the one it was applied against."""
    seq = txn.next_sequence('events')
    event = {
        'id': f"e{seq}",
        'seq': seq,
        'match_id': match['id'],
        'tournament_id': match['tournament_id'],
        'actor': actor_id,
        'created_at': now,
        'kind': kind,
        'payload': payload,
        'revision': revision,
        'result_revision': match['revision'],
        'reverts': reverts,
    }
    return txn.put('events', event)


def events_for_match(txn, match_id: str) -> List[Dict]:
    """All events of a match, oldest first."""
    return sorted(
        txn.rows('events', match_id=match_id),
        key=lambda e: (e['created_at'], e['seq'])
    )


def latest_event(txn, match_id: str):
    """Most recent event that is not itself a revert, or None."""
    for event in reversed(events_for_match(txn, match_id)):
        if event['kind'] != REVERT:
            return event
    return None


def find_revert_of(txn, match_id: str, event_id: str):
    for event in txn.rows('events', match_id=match_id, kind=REVERT):
        if event['reverts'] == event_id:
            return event
    return None


def _page_bound(value, name, default):
    if value is None:
        return default
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer', code='invalid_pagination')
    if value < 0:
        raise ValidationError(f'{name} must not be negative', code='invalid_pagination')
    return value


def list_events(txn, match_id: str, limit=None, offset=None) -> List[Dict]:
    """Newest first, paginated."""
    limit = min(_page_bound(limit, 'limit', DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
    offset = _page_bound(offset, 'offset', 0)
    events = list(reversed(events_for_match(txn, match_id)))
    return events[offset:offset + limit]


def _score_value(payload, field):
    value = payload.get(field)
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValidationError(f'{field} must be a non-negative integer', code='invalid_score')
    return value


def apply_score_update(match: Dict, payload: Dict, names: Dict, sport, now) -> Dict:
    """
    Apply a score/status change to ``match`` and return the event payload.

    The payload keeps the prior and new values plus a readable summary.
    """
    if not is_playable(match):
        raise ValidationError(
            f"Match '{match['id']}' does not accept score updates while {match['status']}",
            code='match_not_playable',
        )
    score_a = _score_value(payload, 'score_a')
    score_b = _score_value(payload, 'score_b')
    status = payload.get('status') or match['status']
    if status not in SCORE_STATUSES:
        raise ValidationError(
            f"status must be one of {', '.join(SCORE_STATUSES)}; use the winner endpoint to complete",
            code='invalid_status',
        )

    prior = {'score_a': match['score_a'], 'score_b': match['score_b'], 'status': match['status']}
    current = {'score_a': score_a, 'score_b': score_b, 'status': status}

    match['score_a'] = score_a
    match['score_b'] = score_b
    match['status'] = status
    match['revision'] += 1
    match['updated_at'] = now

    return {
        'prior': prior,
        'new': current,
        'summary': describe_score_change(prior, current, names, sport),
    }


def incident_payload(payload: Dict) -> Dict:
    """Validate an incident note; incidents never touch match state."""
    if not isinstance(payload, dict):
        raise ValidationError('payload must be an object', code='invalid_payload')
    note = (payload.get('note') or '').strip()
    incident_type = (payload.get('type') or '').strip()
    if not note and not incident_type:
        raise ValidationError('An incident needs a note or a type', code='invalid_payload')
    cleaned = {'note': note or None, 'type': incident_type or None}
    for field in ('player', 'media_url'):
        cleaned[field] = payload.get(field) or None
    return cleaned
