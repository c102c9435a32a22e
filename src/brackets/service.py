"""
BracketService: the operations moderators and organizers call.

Each mutating operation is one store transaction. Capability checks,
revision checks and validation happen before anything is changed, and any
error discards the whole transaction.
"""
import logging
from typing import Callable, Dict, Optional

from .errors import ConflictError, InvariantViolation, NotFoundError, UnauthorizedError, ValidationError
from .events import (
    EventFeed, append_event, apply_score_update, incident_payload, list_events,
)
from .generator import expected_match_count, generate
from .leaderboard import get_default_scoring, normalize_scope, recompute, scope_key
from .models import (
    DRAFT, ACTIVE, CANCELLED, FORMATS, EVENT_KINDS, SCORE_UPDATE,
    WINNER_DECLARED, REVERT, Actor, Team, utcnow,
)
from .progression import apply_winner, transition
from .undo import revert_last

logger = logging.getLogger(__name__)


def _require_actor(actor: Optional[Actor]):
    if actor is None or not actor.actor_id:
        raise UnauthorizedError('An authenticated actor is required')


def _require_admin(actor: Optional[Actor]):
    _require_actor(actor)
    if not actor.is_admin:
        raise UnauthorizedError(f"'{actor.actor_id}' is not an organizer", actor=actor.actor_id)


def _require_moderator(actor: Optional[Actor], tournament: Dict):
    _require_actor(actor)
    if not actor.can_moderate(tournament):
        raise UnauthorizedError(
            f"'{actor.actor_id}' may not moderate tournament '{tournament['id']}'",
            actor=actor.actor_id, tournament_id=tournament['id'],
        )


def _check_revision(match: Dict, expected_revision):
    if expected_revision is None:
        raise ValidationError('expected_revision is required', code='revision_required')
    if expected_revision != match['revision']:
        raise ConflictError(
            f"Match '{match['id']}' is at revision {match['revision']}, not {expected_revision}",
            expected=expected_revision, actual=match['revision'],
        )


def _team_key(tournament_id, team_id):
    return f"{tournament_id}:{team_id}"


class BracketService:
    def __init__(self, store, scoring: Dict = None, clock: Callable[[], str] = utcnow):
        self.store = store
        self.scoring = scoring or get_default_scoring()
        self.clock = clock
        self.feed = EventFeed()

    # Lookups

    def _tournament(self, txn, tournament_id) -> Dict:
        tournament = txn.get('tournaments', tournament_id)
        if tournament is None or tournament.get('deleted_at'):
            raise NotFoundError(f"Tournament '{tournament_id}' not found", tournament_id=tournament_id)
        return tournament

    def _match(self, txn, match_id):
        match = txn.require('matches', match_id, 'Match')
        return self._tournament(txn, match['tournament_id']), match

    def _entrants(self, txn, tournament_id):
        return sorted(txn.rows('tournament_teams', tournament_id=tournament_id), key=lambda tt: tt['seed'])

    def _publish_after_commit(self, txn, event):
        txn.after_commit(lambda: self.feed.publish(event))

    # Organizer operations

    def create_tournament(self, actor, name, format, max_teams=None, sport=None,
                          gender=None, season=None, tournament_id=None) -> Dict:
        _require_admin(actor)
        if not name or not str(name).strip():
            raise ValidationError('Tournament name is required', code='invalid_name')
        if format not in FORMATS:
            raise ValidationError(f"Unknown tournament format '{format}'", code='invalid_format')
        if max_teams is not None and (not isinstance(max_teams, int) or max_teams < 2):
            raise ValidationError('max_teams must be an integer of at least 2', code='invalid_max_teams')

        with self.store.transaction() as txn:
            if tournament_id is None:
                tournament_id = f"t{txn.next_sequence('tournaments')}"
            elif txn.get('tournaments', tournament_id) is not None:
                raise ConflictError(f"Tournament '{tournament_id}' already exists", code='duplicate_tournament')
            now = self.clock()
            tournament = txn.put('tournaments', {
                'id': tournament_id,
                'name': str(name).strip(),
                'format': format,
                'max_teams': max_teams,
                'status': DRAFT,
                'winner': None,
                'sport': sport,
                'gender': gender,
                'season': season,
                'created_by': actor.actor_id,
                'created_at': now,
                'updated_at': now,
                'deleted_at': None,
            })
        logger.info('Created %s tournament %s', format, tournament_id)
        return tournament

    def add_team(self, actor, tournament_id, team_id, seed, name=None) -> Dict:
        _require_admin(actor)
        if not team_id:
            raise ValidationError('team_id is required', code='invalid_team')
        if not isinstance(seed, int) or isinstance(seed, bool) or seed < 1:
            raise ValidationError('seed must be a positive integer', code='invalid_seeds')

        with self.store.transaction() as txn:
            tournament = self._tournament(txn, tournament_id)
            if tournament['status'] != DRAFT:
                raise ValidationError('Teams can only change while the tournament is a draft', code='roster_locked')
            entrants = self._entrants(txn, tournament_id)
            if any(tt['team_id'] == team_id for tt in entrants):
                raise ValidationError(f"Team '{team_id}' is already entered", code='duplicate_team')
            if any(tt['seed'] == seed for tt in entrants):
                raise ValidationError(f'Seed {seed} is already taken', code='invalid_seeds')
            max_teams = tournament.get('max_teams')
            if max_teams is not None and len(entrants) >= max_teams:
                raise ValidationError(f'Tournament is full ({max_teams} teams)', code='too_many_teams')
            entry = txn.put('tournament_teams', {
                'id': _team_key(tournament_id, team_id),
                'tournament_id': tournament_id,
                'team_id': team_id,
                'name': name or team_id,
                'seed': seed,
                'bracket_position': None,
            })
        return entry

    def remove_team(self, actor, tournament_id, team_id):
        _require_admin(actor)
        with self.store.transaction() as txn:
            tournament = self._tournament(txn, tournament_id)
            if tournament['status'] != DRAFT:
                raise ValidationError('Teams can only change while the tournament is a draft', code='roster_locked')
            txn.require('tournament_teams', _team_key(tournament_id, team_id), 'Team')
            txn.delete('tournament_teams', _team_key(tournament_id, team_id))

    def generate_bracket(self, actor, tournament_id) -> Dict:
        """Generate rounds and matches for a draft tournament and activate it."""
        _require_admin(actor)
        with self.store.transaction() as txn:
            tournament = self._tournament(txn, tournament_id)
            if tournament['status'] != DRAFT:
                raise ValidationError(
                    f"Brackets can only be generated for draft tournaments (is {tournament['status']})",
                    code='tournament_not_draft',
                )
            entrants = self._entrants(txn, tournament_id)
            teams = [Team(tt['team_id'], tt['seed'], tt['name']) for tt in entrants]
            bracket = generate(tournament_id, tournament['format'], teams, tournament.get('max_teams'))

            expected = expected_match_count(tournament['format'], len(teams))
            total = sum(r['total_matches'] for r in bracket['rounds'])
            if total != expected or total != len(bracket['matches']):
                logger.error(
                    'Generated bracket for %s has %d matches over rounds totalling %d, expected %d',
                    tournament_id, len(bracket['matches']), total, expected,
                )
                raise InvariantViolation(
                    f"Bracket for '{tournament_id}' does not add up",
                    expected=expected, actual=total,
                )

            for r in bracket['rounds']:
                txn.put('rounds', r)
            for m in bracket['matches']:
                txn.put('matches', m)
            for tt in entrants:
                tt['bracket_position'] = bracket['positions'].get(tt['team_id'])
            transition(tournament, ACTIVE, self.clock())

        logger.info(
            'Generated %s bracket for %s: %d rounds, %d matches',
            tournament['format'], tournament_id, len(bracket['rounds']), len(bracket['matches']),
        )
        return {'tournament': tournament, 'rounds': bracket['rounds'], 'matches': bracket['matches']}

    def reset_bracket(self, actor, tournament_id) -> Dict:
        """Throw away an untouched bracket and return the tournament to draft."""
        _require_admin(actor)
        with self.store.transaction() as txn:
            tournament = self._tournament(txn, tournament_id)
            if tournament['status'] != ACTIVE:
                raise ValidationError('Only active brackets can be reset', code='tournament_not_active')
            matches = txn.rows('matches', tournament_id=tournament_id)
            if txn.rows('events', tournament_id=tournament_id) or any(m['winner'] or m['is_draw'] for m in matches):
                raise ConflictError('Bracket already has recorded results', code='bracket_in_progress')
            for m in matches:
                txn.delete('matches', m['id'])
            for r in txn.rows('rounds', tournament_id=tournament_id):
                txn.delete('rounds', r['id'])
            for tt in self._entrants(txn, tournament_id):
                tt['bracket_position'] = None
            transition(tournament, DRAFT, self.clock())
        return tournament

    def cancel_tournament(self, actor, tournament_id) -> Dict:
        _require_admin(actor)
        with self.store.transaction() as txn:
            tournament = self._tournament(txn, tournament_id)
            transition(tournament, CANCELLED, self.clock())
        return tournament

    def delete_tournament(self, actor, tournament_id) -> Dict:
        """Soft delete: the record stays but disappears from reads and leaderboards."""
        _require_admin(actor)
        with self.store.transaction() as txn:
            tournament = self._tournament(txn, tournament_id)
            tournament['deleted_at'] = self.clock()
        logger.info('Deleted tournament %s', tournament_id)
        return tournament

    # Moderator operations

    def declare_winner(self, actor, match_id, winner_team_id, expected_revision, score=None) -> Dict:
        with self.store.transaction() as txn:
            tournament, match = self._match(txn, match_id)
            _require_moderator(actor, tournament)
            _check_revision(match, expected_revision)
            revision = match['revision']
            now = self.clock()
            effects = apply_winner(txn, tournament, match, winner_team_id, self.scoring, score=score, now=now)
            event = append_event(txn, match, WINNER_DECLARED, actor.actor_id, effects, revision, now)
            self._publish_after_commit(txn, event)
            round_record = txn.get('rounds', match['round_id'])
        return {'match': match, 'round': round_record, 'event': event, 'tournament': tournament}

    def record_event(self, actor, match_id, kind, payload, expected_revision=None) -> Dict:
        """Append a score update or incident to the match log."""
        if kind == WINNER_DECLARED:
            payload = payload or {}
            return self.declare_winner(
                actor, match_id, payload.get('winner_team_id'), expected_revision, score=payload.get('score'),
            )
        if kind == REVERT:
            raise ValidationError('Use revert_last to undo an event', code='invalid_kind')
        if kind not in EVENT_KINDS:
            raise ValidationError(f"Unknown event kind '{kind}'", code='invalid_kind')
        if not isinstance(payload, dict):
            raise ValidationError('payload must be an object', code='invalid_payload')

        with self.store.transaction() as txn:
            tournament, match = self._match(txn, match_id)
            _require_moderator(actor, tournament)
            now = self.clock()
            revision = match['revision']
            if kind == SCORE_UPDATE:
                _check_revision(match, expected_revision)
                if tournament['status'] != ACTIVE:
                    raise ValidationError(f"Tournament '{tournament['id']}' is {tournament['status']}",
                                          code='tournament_not_active')
                names = self._names(txn, match)
                body = apply_score_update(match, payload, names, tournament.get('sport'), now)
            else:
                if expected_revision is not None:
                    _check_revision(match, expected_revision)
                body = incident_payload(payload)
            event = append_event(txn, match, kind, actor.actor_id, body, revision, now)
            self._publish_after_commit(txn, event)
        return {'match': match, 'event': event}

    def _names(self, txn, match):
        names = {}
        for slot in ('a', 'b'):
            team_id = match[f'team_{slot}']
            entry = txn.get('tournament_teams', _team_key(match['tournament_id'], team_id))
            names[slot] = entry['name'] if entry else team_id
        return names

    def revert_last(self, actor, match_id) -> Dict:
        with self.store.transaction() as txn:
            tournament, match = self._match(txn, match_id)
            _require_moderator(actor, tournament)
            event = revert_last(txn, tournament, match, actor.actor_id, self.clock())
            self._publish_after_commit(txn, event)
            round_record = txn.get('rounds', match['round_id'])
        return {'match': match, 'round': round_record, 'event': event, 'tournament': tournament}

    def recompute_leaderboard(self, actor, scope) -> Dict:
        _require_admin(actor)
        with self.store.transaction() as txn:
            snapshot = recompute(txn, scope, self.scoring, self.clock())
        return snapshot

    # Reads

    def get_bracket(self, tournament_id) -> Dict:
        with self.store.snapshot() as txn:
            tournament = self._tournament(txn, tournament_id)
            rounds = sorted(txn.rows('rounds', tournament_id=tournament_id), key=lambda r: r['round_number'])
            matches = sorted(
                txn.rows('matches', tournament_id=tournament_id),
                key=lambda m: (m['round_number'], m['bracket_position'])
            )
            return {
                'tournament': tournament,
                'teams': self._entrants(txn, tournament_id),
                'rounds': rounds,
                'matches': matches,
            }

    def get_match(self, match_id) -> Dict:
        with self.store.snapshot() as txn:
            _, match = self._match(txn, match_id)
            return match

    def list_events(self, match_id, limit=None, offset=None):
        with self.store.snapshot() as txn:
            self._match(txn, match_id)
            return list_events(txn, match_id, limit, offset)

    def events_since(self, match_id, after_seq=0):
        """Events of a match with a sequence number above ``after_seq``, oldest first."""
        with self.store.snapshot() as txn:
            self._match(txn, match_id)
            events = [e for e in txn.rows('events', match_id=match_id) if e['seq'] > after_seq]
        return sorted(events, key=lambda e: (e['created_at'], e['seq']))

    def get_leaderboard(self, scope, limit=50, offset=0) -> Dict:
        scope = normalize_scope(scope)
        if limit < 0 or offset < 0:
            raise ValidationError('limit and offset must not be negative', code='invalid_pagination')
        with self.store.snapshot() as txn:
            snapshot = txn.get('leaderboards', scope_key(scope))
        if snapshot is None:
            raise NotFoundError(f"No leaderboard computed for {scope_key(scope)}", code='no_leaderboard')
        page = dict(snapshot)
        page['total'] = len(snapshot['entries'])
        page['entries'] = snapshot['entries'][offset:offset + limit]
        return page

    def subscribe(self, match_id, callback: Callable) -> Callable:
        """Deliver every future event of ``match_id`` to ``callback``; returns an unsubscribe function."""
        return self.feed.subscribe(match_id, callback)
