"""
Bracket generation entry point: validates the seeded field and dispatches
on tournament format.
"""
from typing import List, Dict

from .double_elimination import generate_double_elimination
from .elimination import generate_single_elimination
from .errors import ValidationError
from .models import SINGLE_ELIMINATION, DOUBLE_ELIMINATION, ROUND_ROBIN, FORMATS, Team
from .round_robin import generate_round_robin

GENERATORS = {
    SINGLE_ELIMINATION: generate_single_elimination,
    DOUBLE_ELIMINATION: generate_double_elimination,
    ROUND_ROBIN: generate_round_robin,
}


def validate_field(teams: List[Team], max_teams=None):
    """Reject fields that cannot form a bracket."""
    if len(teams) < 2:
        raise ValidationError(f'At least 2 teams are required, got {len(teams)}', code='too_few_teams')
    if max_teams is not None and len(teams) > max_teams:
        raise ValidationError(
            f'{len(teams)} teams exceeds the declared maximum of {max_teams}',
            code='too_many_teams',
        )
    team_ids = [t.team_id for t in teams]
    if len(set(team_ids)) != len(team_ids):
        raise ValidationError('A team is entered more than once', code='duplicate_team')
    seeds = sorted(t.seed for t in teams)
    if seeds != list(range(1, len(teams) + 1)):
        raise ValidationError(
            f'Seeds must be a contiguous 1..{len(teams)} permutation, got {seeds}',
            code='invalid_seeds',
        )


def expected_match_count(fmt: str, num_teams: int) -> int:
    """Total matches (summed round ``total_matches``) a format implies."""
    if fmt == SINGLE_ELIMINATION:
        return num_teams - 1
    if fmt == DOUBLE_ELIMINATION:
        # 2N-2 playable plus the conditional bracket reset
        return 2 * num_teams - 1
    return num_teams * (num_teams - 1) // 2


def generate(tournament_id: str, fmt: str, teams: List[Team], max_teams=None) -> Dict:
    """Build rounds and matches for a seeded field. Pure; writes nothing."""
    if fmt not in FORMATS:
        raise ValidationError(f"Unknown tournament format '{fmt}'", code='invalid_format')
    validate_field(teams, max_teams)
    return GENERATORS[fmt](tournament_id, teams)
