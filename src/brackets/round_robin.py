"""
Round robin scheduling using the circle method.

Seed 1 stays fixed while everyone else rotates one place per round, so every
unordered pair meets exactly once and nobody plays twice in a round. An odd
field gets a phantom entrant; whoever draws it sits the round out.
"""
from typing import List, Dict

from .models import POOL, Team, new_match, new_round


def circle_pairings(team_ids: List) -> List[List[tuple]]:
    """Return one list of (home, away) pairs per round."""
    entrants = list(team_ids)
    if len(entrants) % 2:
        entrants.append(None)
    n = len(entrants)

    rounds = []
    for round_idx in range(n - 1):
        pairs = []
        for i in range(n // 2):
            home, away = entrants[i], entrants[n - 1 - i]
            if home is None or away is None:
                continue
            # Alternate the fixed team's side so it is not always listed first
            if i == 0 and round_idx % 2 == 1:
                home, away = away, home
            pairs.append((home, away))
        rounds.append(pairs)
        entrants = [entrants[0], entrants[-1]] + entrants[1:-1]
    return rounds


def generate_round_robin(tournament_id: str, teams: List[Team]) -> Dict:
    """
    Generate a round robin schedule.

    Returns dict with 'rounds', 'matches' and 'positions' (seed order).
    """
    ordered = sorted(teams, key=lambda t: t.seed)
    rounds = []
    matches = []
    for round_idx, pairs in enumerate(circle_pairings([t.team_id for t in ordered]), start=1):
        rounds.append(new_round(tournament_id, round_idx, f"Round {round_idx}", POOL, len(pairs)))
        for position, (home, away) in enumerate(pairs, start=1):
            matches.append(new_match(
                tournament_id, f"R{round_idx}-M{position}", POOL, round_idx, position,
                team_a=home, team_b=away,
            ))
    return {
        'rounds': rounds,
        'matches': matches,
        'positions': {t.team_id: idx + 1 for idx, t in enumerate(ordered)},
    }
