"""
Single-level undo for match events.

Undo never deletes history: it appends a ``revert`` event that restores
the prior values recorded by the event it cancels.
"""
import logging
from typing import Dict

from .errors import AlreadyRevertedError, ConflictError, NoEventError, ValidationError
from .events import append_event, find_revert_of, latest_event
from .models import CANCELLED, SCORE_UPDATE, WINNER_DECLARED, INCIDENT, REVERT
from .progression import reverse_winner

logger = logging.getLogger(__name__)


def _restore(match: Dict, prior: Dict, now):
    restored = {}
    for field, value in prior.items():
        if field in match:
            match[field] = value
            restored[field] = value
    match['revision'] += 1
    match['updated_at'] = now
    return restored


def revert_last(txn, tournament: Dict, match: Dict, actor_id, now) -> Dict:
    """Cancel the most recent non-revert event of ``match`` and log the revert."""
    if tournament['status'] == CANCELLED:
        raise ValidationError(
            f"Tournament '{tournament['id']}' is cancelled", code='tournament_not_active',
        )
    target = latest_event(txn, match['id'])
    if target is None:
        raise NoEventError(f"Match '{match['id']}' has no events to undo", match_id=match['id'])
    if find_revert_of(txn, match['id'], target['id']) is not None:
        raise AlreadyRevertedError(
            f"Event '{target['id']}' has already been reverted",
            match_id=match['id'], event_id=target['id'],
        )
    if target['kind'] != INCIDENT and match['revision'] != target['result_revision']:
        raise ConflictError(
            f"Match '{match['id']}' changed after event '{target['id']}'",
            code='stale_revision', expected=target['result_revision'], actual=match['revision'],
        )

    revision_before = match['revision']
    payload = target['payload']
    restored = {}
    if target['kind'] == WINNER_DECLARED:
        reverse_winner(txn, tournament, match, payload, now)
        restored = _restore(match, payload['prior'], now)
    elif target['kind'] == SCORE_UPDATE:
        restored = _restore(match, payload['prior'], now)

    logger.info('Reverted %s event %s on match %s', target['kind'], target['id'], match['id'])
    return append_event(
        txn, match, REVERT, actor_id,
        {'reverted_kind': target['kind'], 'restored': restored},
        revision_before, now, reverts=target['id'],
    )
