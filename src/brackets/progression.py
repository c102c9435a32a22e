"""
Progression engine: winner declaration, round completion, slot propagation
and the tournament state machine.

Every function here runs inside a store transaction handed in by the
caller, so counter updates and the terminal check commit or fail together
with the match change that triggered them.
"""
import logging
from typing import Dict

from .errors import ConflictError, InvalidParticipantError, InvariantViolation, ValidationError
from .leaderboard import compute_standings
from .models import (
    DRAFT, ACTIVE, COMPLETED, CANCELLED, SCHEDULED, LIVE,
    SINGLE_ELIMINATION, DOUBLE_ELIMINATION, ROUND_ROBIN,
    GRAND_FINAL, BRACKET_RESET,
    participant_slot, other_team, round_status,
)

logger = logging.getLogger(__name__)

TRANSITIONS = {
    DRAFT: {ACTIVE, CANCELLED},
    ACTIVE: {COMPLETED, CANCELLED, DRAFT},
    COMPLETED: {ACTIVE},
    CANCELLED: set(),
}

MATCH_STATE_FIELDS = ('score_a', 'score_b', 'status', 'winner', 'is_draw')


def transition(tournament: Dict, new_status: str, now=None):
    """Move a tournament along its state machine or refuse."""
    current = tournament['status']
    if new_status not in TRANSITIONS.get(current, set()):
        raise ValidationError(
            f"Tournament '{tournament['id']}' cannot go from {current} to {new_status}",
            code='invalid_transition',
        )
    tournament['status'] = new_status
    tournament['updated_at'] = now
    logger.info('Tournament %s: %s -> %s', tournament['id'], current, new_status)


def match_state(match: Dict) -> Dict:
    return {field: match[field] for field in MATCH_STATE_FIELDS}


def _validate_score(score):
    if score is None:
        return None
    try:
        score_a, score_b = score
    except (TypeError, ValueError):
        raise ValidationError('score must be a pair of integers', code='invalid_score')
    for value in (score_a, score_b):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError('Scores must be non-negative integers', code='invalid_score')
    return score_a, score_b


def _check_score_agrees(score, winner_slot):
    """A final score may tie (shoot-outs) but never favour the loser."""
    if score is None:
        return
    score_a, score_b = score
    if winner_slot is None:
        if score_a != score_b:
            raise ValidationError('A draw must have level scores', code='score_mismatch')
    elif (winner_slot == 'a' and score_a < score_b) or (winner_slot == 'b' and score_b < score_a):
        raise ValidationError('The final score favours the losing team', code='score_mismatch')


def _check_declarable(tournament: Dict, match: Dict, winner_team_id):
    if match['status'] == COMPLETED:
        raise ConflictError(f"Match '{match['id']}' is already completed", code='already_completed')
    if match['status'] not in (SCHEDULED, LIVE):
        raise ValidationError(f"Match '{match['id']}' is {match['status']}", code='match_not_playable')
    if tournament['status'] != ACTIVE:
        raise ValidationError(
            f"Tournament '{tournament['id']}' is {tournament['status']}",
            code='tournament_not_active',
        )
    if match['team_a'] is None or match['team_b'] is None:
        raise ValidationError(
            f"Match '{match['id']}' is still waiting for its participants",
            code='placeholder_match',
        )
    if winner_team_id is None:
        if tournament['format'] != ROUND_ROBIN:
            raise ValidationError('Elimination matches cannot end in a draw', code='draw_not_allowed')
        return None
    slot = participant_slot(match, winner_team_id)
    if slot is None:
        raise InvalidParticipantError(
            f"Team '{winner_team_id}' is not playing in match '{match['id']}'",
            match_id=match['id'], team_id=winner_team_id,
        )
    return slot


def _bump_round(txn, match: Dict, delta: int) -> Dict:
    round_record = txn.require('rounds', match['round_id'], 'Round')
    new_count = round_record['completed_matches'] + delta
    if new_count < 0 or new_count > round_record['total_matches']:
        logger.error(
            'Round counter out of bounds: round=%s completed=%s total=%s delta=%s match=%s',
            round_record['id'], round_record['completed_matches'],
            round_record['total_matches'], delta, match['id'],
        )
        raise InvariantViolation(
            f"Round '{round_record['id']}' completion counter would become {new_count}",
            round_id=round_record['id'], match_id=match['id'],
        )
    round_record['completed_matches'] = new_count
    round_record['status'] = round_status(round_record)
    return round_record


def _propagate(txn, match: Dict, link_field: str, team_id, effects: Dict):
    """Place a team into the downstream slot ``match[link_field]`` points at."""
    link = match.get(link_field)
    if not link or team_id is None:
        return
    target = txn.get('matches', link['match'])
    slot_field = f"team_{link['slot']}"
    if target is None or target[slot_field] not in (None, team_id):
        logger.warning(
            'Could not place %s from %s into %s slot %s',
            team_id, match['id'], link['match'], link['slot'],
        )
        return
    target[slot_field] = team_id
    effects['propagated'].append({
        'match': target['id'],
        'slot': link['slot'],
        'team': team_id,
        'revision': target['revision'],
    })


def _find_reset_match(txn, tournament_id):
    for m in txn.rows('matches', tournament_id=tournament_id, bracket=BRACKET_RESET):
        return m
    return None


def _is_terminal(txn, tournament: Dict, match: Dict, winner_slot) -> bool:
    fmt = tournament['format']
    if fmt == SINGLE_ELIMINATION:
        return match['winner_to'] is None
    if fmt == DOUBLE_ELIMINATION:
        if match['bracket'] == BRACKET_RESET:
            return True
        # The winners bracket champion sits in slot a of the grand final.
        return match['bracket'] == GRAND_FINAL and winner_slot == 'a'
    rounds = txn.rows('rounds', tournament_id=tournament['id'])
    return all(r['status'] == COMPLETED for r in rounds)


def _round_robin_champion(txn, tournament: Dict, scoring: Dict):
    matches = txn.rows('matches', tournament_id=tournament['id'])
    standings = compute_standings([tournament], matches, scoring)
    return standings[0]['team_id'] if standings else None


def apply_winner(txn, tournament: Dict, match: Dict, winner_team_id, scoring: Dict,
                 score=None, now=None) -> Dict:
    """
    Complete ``match`` with ``winner_team_id`` (None records a round robin draw).

    Returns the effects needed to reverse the change later: the prior match
    state, downstream slots filled, and whether the round or tournament
    completed.
    """
    winner_slot = _check_declarable(tournament, match, winner_team_id)
    score = _validate_score(score)
    _check_score_agrees(score, winner_slot)

    effects = {
        'prior': match_state(match),
        'winner': winner_team_id,
        'propagated': [],
        'round_completed': False,
        'tournament_completed': False,
        'reset_cancelled': None,
    }

    if score is not None:
        match['score_a'], match['score_b'] = score
    match['status'] = COMPLETED
    match['winner'] = winner_team_id
    match['is_draw'] = winner_team_id is None
    match['revision'] += 1
    match['updated_at'] = now
    effects['score'] = [match['score_a'], match['score_b']]

    round_record = _bump_round(txn, match, 1)
    effects['round_completed'] = round_record['status'] == COMPLETED

    terminal = _is_terminal(txn, tournament, match, winner_slot)
    if match['bracket'] == GRAND_FINAL and terminal:
        reset = _find_reset_match(txn, tournament['id'])
        if reset is not None and reset['status'] == SCHEDULED:
            reset['status'] = CANCELLED
            reset['updated_at'] = now
            effects['reset_cancelled'] = reset['id']
    elif winner_team_id is not None:
        _propagate(txn, match, 'winner_to', winner_team_id, effects)
        _propagate(txn, match, 'loser_to', other_team(match, winner_team_id), effects)

    if terminal:
        champion = winner_team_id
        if tournament['format'] == ROUND_ROBIN:
            champion = _round_robin_champion(txn, tournament, scoring)
        transition(tournament, COMPLETED, now)
        tournament['winner'] = champion
        effects['tournament_completed'] = True
        logger.info('Tournament %s completed, winner %s', tournament['id'], champion)

    return effects


def reverse_winner(txn, tournament: Dict, match: Dict, effects: Dict, now=None):
    """
    Undo the side effects recorded by :func:`apply_winner`.

    Refuses when a team placed downstream has already started playing
    there, since undoing would strand that result.
    """
    for placed in effects.get('propagated', []):
        target = txn.get('matches', placed['match'])
        if target is None:
            continue
        if target['status'] != SCHEDULED or target['revision'] != placed['revision']:
            raise ConflictError(
                f"Match '{target['id']}' has progressed since {placed['team']} advanced into it",
                code='downstream_progressed', match_id=target['id'],
            )
    reset_id = effects.get('reset_cancelled')
    reset = txn.get('matches', reset_id) if reset_id else None
    if reset is not None and reset['status'] != CANCELLED:
        raise ConflictError(f"Match '{reset_id}' is no longer cancelled", code='downstream_progressed')

    for placed in effects.get('propagated', []):
        target = txn.get('matches', placed['match'])
        slot_field = f"team_{placed['slot']}"
        if target is not None and target[slot_field] == placed['team']:
            target[slot_field] = None
    if reset is not None:
        reset['status'] = SCHEDULED
        reset['updated_at'] = now

    _bump_round(txn, match, -1)

    # Any reopened round means the tournament is no longer finished.
    if tournament['status'] == COMPLETED:
        transition(tournament, ACTIVE, now)
        tournament['winner'] = None
