"""
Double elimination bracket generation.

In double elimination:
- Teams must lose twice to be eliminated
- Winners Bracket: Teams that haven't lost yet
- Losers Bracket: Teams that have lost once
- Grand Final: Winners bracket champion vs Losers bracket champion
- Bracket Reset: If losers bracket winner wins Grand Final, a final match decides the champion

Round numbers run continuously: winners rounds first, then losers rounds,
then the grand final and the reset.
"""
import math
from typing import List, Dict

from .elimination import (
    calculate_bracket_size,
    calculate_byes,
    bracket_positions,
    collapse_stages,
    make_node,
    winners_bracket_stages,
)
from .models import LOSERS, GRAND_FINAL, BRACKET_RESET, Team


def get_losers_round_name(round_num: int, total_losers_rounds: int) -> str:
    """Get the name for a losers bracket round (0-indexed)."""
    rounds_from_end = total_losers_rounds - round_num - 1
    if rounds_from_end == 0:
        return "Losers Final"
    elif rounds_from_end == 1:
        return "Losers Semifinal"
    else:
        return f"Losers Round {round_num + 1}"


def get_winners_round_name(teams_in_round: int) -> str:
    """Get the name for a winners bracket round."""
    if teams_in_round == 2:
        return "Winners Final"
    elif teams_in_round == 4:
        return "Winners Semifinal"
    elif teams_in_round == 8:
        return "Winners Quarterfinal"
    else:
        return f"Winners Round of {teams_in_round}"


def calculate_losers_bracket_rounds(bracket_size: int) -> int:
    """
    Calculate number of rounds in losers bracket.
    For N teams in winners bracket (power of 2):
    - Winners bracket has log2(N) rounds
    - Losers bracket has 2 * (log2(N) - 1) rounds

    Pattern: minor, major, minor, major, ... ending with a major round
    """
    if bracket_size < 2:
        return 0
    winners_rounds = int(math.log2(bracket_size))
    return 2 * (winners_rounds - 1)


def _losers_bracket_stages(bracket_size: int) -> List[Dict]:
    """
    Lay out the losers bracket following the standard double elimination format.

    The losers bracket alternates between:
    - Minor rounds (even indices: 0, 2, 4...): Only losers bracket teams compete
    - Major rounds (odd indices: 1, 3, 5...): Losers from winners bracket drop in

    For 8-team bracket:
    - L Round 1 (minor): 4 W-QF losers pair off -> 2 matches -> 2 winners
    - L Round 2 (major): 2 W-SF losers + 2 L-R1 winners -> 2 matches -> 2 winners
    - L Round 3 (minor): 2 L-R2 winners pair off -> 1 match -> 1 winner
    - L Round 4 (major): 1 W-F loser + 1 L-R3 winner -> 1 match -> 1 winner (L champion)
    """
    total_losers_rounds = calculate_losers_bracket_rounds(bracket_size)
    stages = []
    if total_losers_rounds <= 0:
        return stages

    current_losers_count = bracket_size // 2
    winners_round_idx = 1

    for round_num in range(total_losers_rounds):
        round_code = f"L{round_num + 1}"
        nodes = []

        if round_num == 0:
            num_matches = current_losers_count // 2
            for i in range(num_matches):
                nodes.append(make_node(
                    f"{round_code}-M{i + 1}", i + 1,
                    ('loser', f"W1-M{i * 2 + 1}"),
                    ('loser', f"W1-M{i * 2 + 2}"),
                ))
            current_losers_count = num_matches

        elif round_num % 2 == 1:
            # Major round: winners bracket losers drop in against losers bracket survivors
            winners_round_idx += 1
            for i in range(current_losers_count):
                nodes.append(make_node(
                    f"{round_code}-M{i + 1}", i + 1,
                    ('loser', f"W{winners_round_idx}-M{i + 1}"),
                    ('winner', f"L{round_num}-M{i + 1}"),
                ))

        else:
            num_matches = current_losers_count // 2
            for i in range(num_matches):
                nodes.append(make_node(
                    f"{round_code}-M{i + 1}", i + 1,
                    ('winner', f"L{round_num}-M{i * 2 + 1}"),
                    ('winner', f"L{round_num}-M{i * 2 + 2}"),
                ))
            current_losers_count = num_matches

        stages.append({
            'name': get_losers_round_name(round_num, total_losers_rounds),
            'bracket': LOSERS,
            'nodes': nodes,
        })

    return stages


def generate_double_elimination(tournament_id: str, teams: List[Team]) -> Dict:
    """
    Generate a complete double elimination bracket.

    Losers bracket slots whose feeder was a bye never fill, so those nodes
    collapse: a single live entrant is forwarded and empty nodes vanish.
    The reset match is created up front and flagged ``is_conditional``; it
    is only played when the losers bracket champion takes the grand final.

    Returns dict with 'rounds', 'matches', 'positions', 'bracket_size',
    'byes', 'total_winners_rounds' and 'total_losers_rounds'.
    """
    bracket_size = calculate_bracket_size(len(teams))
    total_winners_rounds = int(math.log2(bracket_size))
    total_losers_rounds = calculate_losers_bracket_rounds(bracket_size)

    winners = winners_bracket_stages(teams, name_fn=get_winners_round_name)
    losers = _losers_bracket_stages(bracket_size)

    winners_final = f"W{total_winners_rounds}-M1"
    if total_losers_rounds:
        losers_champion = ('winner', f"L{total_losers_rounds}-M1")
    else:
        # Two-team bracket: the only loser goes straight to the grand final.
        losers_champion = ('loser', winners_final)

    grand_final = {
        'name': 'Grand Final',
        'bracket': GRAND_FINAL,
        'nodes': [make_node('GF', 1, ('winner', winners_final), losers_champion)],
    }
    bracket_reset = {
        'name': 'Bracket Reset',
        'bracket': BRACKET_RESET,
        'nodes': [make_node('BR', 1, ('winner', 'GF'), ('loser', 'GF'))],
    }

    rounds, matches = collapse_stages(tournament_id, winners + losers + [grand_final, bracket_reset])
    for match in matches:
        if match['bracket'] == BRACKET_RESET:
            match['is_conditional'] = True

    return {
        'rounds': rounds,
        'matches': matches,
        'positions': bracket_positions(teams),
        'bracket_size': bracket_size,
        'byes': calculate_byes(len(teams)),
        'total_winners_rounds': total_winners_rounds,
        'total_losers_rounds': total_losers_rounds,
    }
