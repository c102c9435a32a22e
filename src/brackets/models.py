"""
Record shapes and status vocabularies shared by the bracket core.

Records are plain dicts so they round-trip through the YAML store unchanged.
"""
from datetime import datetime, timezone


SINGLE_ELIMINATION = 'single_elimination'
DOUBLE_ELIMINATION = 'double_elimination'
ROUND_ROBIN = 'round_robin'
FORMATS = (SINGLE_ELIMINATION, DOUBLE_ELIMINATION, ROUND_ROBIN)

# Tournament lifecycle
DRAFT = 'draft'
ACTIVE = 'active'
COMPLETED = 'completed'
CANCELLED = 'cancelled'

# Round lifecycle
PENDING = 'pending'

# Match lifecycle
SCHEDULED = 'scheduled'
LIVE = 'live'

# Bracket sections
WINNERS = 'winners'
LOSERS = 'losers'
GRAND_FINAL = 'grand_final'
BRACKET_RESET = 'bracket_reset'
POOL = 'round_robin'

# Event kinds
SCORE_UPDATE = 'score_update'
INCIDENT = 'incident'
WINNER_DECLARED = 'winner_declared'
REVERT = 'revert'
EVENT_KINDS = (SCORE_UPDATE, INCIDENT, WINNER_DECLARED, REVERT)

SLOTS = ('a', 'b')


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class Team:
    """A seeded entrant handed to the bracket generator."""

    def __init__(self, team_id, seed, name=None):
        self.team_id = team_id
        self.seed = seed
        self.name = name or team_id

    def __repr__(self):
        return f"Team(team_id={self.team_id}, seed={self.seed}, name={self.name})"


class Actor:
    """Authenticated identity handed in by the surrounding auth layer.

    Empty ``sports``/``tournaments`` assignments mean the moderator is not
    restricted, matching how the portal treats unassigned moderators.
    """

    def __init__(self, actor_id, role='moderator', sports=None, tournaments=None):
        self.actor_id = actor_id
        self.role = role
        self.sports = set(sports or [])
        self.tournaments = set(tournaments or [])

    @property
    def is_admin(self):
        return self.role == 'admin'

    def can_moderate(self, tournament: dict) -> bool:
        if self.is_admin:
            return True
        if self.role != 'moderator':
            return False
        if self.tournaments and tournament['id'] in self.tournaments:
            return True
        if self.sports:
            return tournament.get('sport') in self.sports
        return not self.tournaments

    def __repr__(self):
        return f"Actor(actor_id={self.actor_id}, role={self.role})"


def match_id(tournament_id, code):
    return f"{tournament_id}:{code}"


def round_id(tournament_id, round_number):
    return f"{tournament_id}:R{round_number}"


def new_match(tournament_id, code, bracket, round_number, position,
              team_a=None, team_b=None, source_a=None, source_b=None):
    """Build a fresh match record in ``scheduled`` state at revision 1."""
    return {
        'id': match_id(tournament_id, code),
        'tournament_id': tournament_id,
        'round_id': round_id(tournament_id, round_number),
        'round_number': round_number,
        'code': code,
        'bracket': bracket,
        'bracket_position': position,
        'team_a': team_a,
        'team_b': team_b,
        'source_a': source_a,
        'source_b': source_b,
        'winner_to': None,
        'loser_to': None,
        'status': SCHEDULED,
        'score_a': 0,
        'score_b': 0,
        'winner': None,
        'is_draw': False,
        'is_conditional': False,
        'revision': 1,
        'updated_at': None,
    }


def new_round(tournament_id, round_number, name, bracket, total_matches):
    return {
        'id': round_id(tournament_id, round_number),
        'tournament_id': tournament_id,
        'round_number': round_number,
        'name': name,
        'bracket': bracket,
        'total_matches': total_matches,
        'completed_matches': 0,
        'status': PENDING,
    }


def round_status(round_record: dict) -> str:
    """Derive a round's status from its completion counter."""
    if round_record['total_matches'] and round_record['completed_matches'] >= round_record['total_matches']:
        return COMPLETED
    if round_record['completed_matches'] > 0:
        return ACTIVE
    return PENDING


def is_playable(match: dict) -> bool:
    """Both slots hold concrete teams and no result is in."""
    return (match['status'] in (SCHEDULED, LIVE)
            and match['team_a'] is not None
            and match['team_b'] is not None)


def participant_slot(match: dict, team_id):
    """Return 'a' or 'b' for a team playing in ``match``, else None."""
    if team_id is None:
        return None
    if match['team_a'] == team_id:
        return 'a'
    if match['team_b'] == team_id:
        return 'b'
    return None


def other_team(match: dict, team_id):
    return match['team_b'] if match['team_a'] == team_id else match['team_a']
