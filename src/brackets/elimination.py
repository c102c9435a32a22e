"""
Single elimination bracket generation.

A bracket is first laid out as stages of nodes. Each node slot names where
its entrant comes from: a seeded team, or the winner/loser of an earlier
node. Byes are then collapsed out of that graph so only playable matches
become match records, and each surviving match gets ``winner_to`` /
``loser_to`` links pointing at the slot its result feeds.
"""
import math
from typing import List, Dict

from .models import WINNERS, SLOTS, Team, new_match, new_round


def get_round_name(teams_in_round: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {teams_in_round}"


def calculate_bracket_size(num_teams: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_teams <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_teams))


def calculate_byes(num_teams: int) -> int:
    """Calculate number of byes needed."""
    return calculate_bracket_size(num_teams) - num_teams


def _generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 teams: [1, 8, 4, 5, 2, 7, 3, 6]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    Winners: 1v4 side, 2v3 side
    Final: 1v2 (if chalk)
    """
    if bracket_size <= 2:
        return [1, 2]

    half_size = bracket_size // 2
    upper_half = _generate_bracket_order(half_size)

    # Pair each upper seed with its complement
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])

    return result


def bracket_positions(teams: List[Team]) -> Dict[str, int]:
    """Map each team to its 1-based line in the padded bracket."""
    order = _generate_bracket_order(calculate_bracket_size(len(teams)))
    line_of_seed = {seed: idx + 1 for idx, seed in enumerate(order)}
    return {team.team_id: line_of_seed[team.seed] for team in teams}


def make_node(code: str, position: int, source_a, source_b) -> Dict:
    return {'code': code, 'position': position, 'slots': {'a': source_a, 'b': source_b}}


def winners_bracket_stages(teams: List[Team], name_fn=None, bracket: str = WINNERS) -> List[Dict]:
    """
    Lay out the winners bracket as stages of nodes.

    Round one pairs seeds in standard bracket order; a missing seed leaves a
    ``None`` slot (a bye). Later rounds take the winners of adjacent matches.
    """
    name_fn = name_fn or get_round_name
    seed_to_team = {team.seed: team.team_id for team in teams}
    bracket_size = calculate_bracket_size(len(teams))
    total_rounds = int(math.log2(bracket_size))
    bracket_order = _generate_bracket_order(bracket_size)

    stages = []
    first_round = []
    for i in range(0, len(bracket_order), 2):
        team1 = seed_to_team.get(bracket_order[i])
        team2 = seed_to_team.get(bracket_order[i + 1])
        match_number = i // 2 + 1
        first_round.append(make_node(
            f"W1-M{match_number}", match_number,
            ('team', team1) if team1 is not None else None,
            ('team', team2) if team2 is not None else None,
        ))
    stages.append({'name': name_fn(bracket_size), 'bracket': bracket, 'nodes': first_round})

    teams_in_round = bracket_size // 2
    for round_num in range(2, total_rounds + 1):
        prev_nodes = stages[-1]['nodes']
        nodes = []
        for i in range(len(prev_nodes) // 2):
            nodes.append(make_node(
                f"W{round_num}-M{i + 1}", i + 1,
                ('winner', prev_nodes[i * 2]['code']),
                ('winner', prev_nodes[i * 2 + 1]['code']),
            ))
        stages.append({'name': name_fn(teams_in_round), 'bracket': bracket, 'nodes': nodes})
        teams_in_round //= 2

    return stages


def _resolve_source(source, outcomes: Dict):
    """Follow a slot source through collapsed nodes; None means the slot stays empty."""
    if source is None:
        return None
    kind, ref = source
    if kind == 'team':
        return source
    state, forwarded = outcomes[ref]
    if state == 'match':
        return source
    if kind == 'winner' and state == 'forward':
        return forwarded
    # A bye or dead node never produces a loser.
    return None


def collapse_stages(tournament_id: str, stages: List[Dict]):
    """
    Turn bracket stages into round and match records.

    A node with two live entrants becomes a match. A node with one live
    entrant is a bye: the entrant is forwarded to wherever the node's winner
    would have gone. A node with none disappears. Stages left without
    matches produce no round, and round numbers stay contiguous.
    """
    outcomes = {}
    staged = []
    for stage in stages:
        live_nodes = []
        for node in stage['nodes']:
            entrants = {slot: _resolve_source(node['slots'][slot], outcomes) for slot in SLOTS}
            live = [e for e in entrants.values() if e is not None]
            if len(live) == 2:
                outcomes[node['code']] = ('match', None)
                live_nodes.append((node, entrants))
            elif len(live) == 1:
                outcomes[node['code']] = ('forward', live[0])
            else:
                outcomes[node['code']] = ('dead', None)
        staged.append((stage, live_nodes))

    rounds = []
    matches = []
    by_code = {}
    round_number = 0
    for stage, live_nodes in staged:
        if not live_nodes:
            continue
        round_number += 1
        rounds.append(new_round(tournament_id, round_number, stage['name'], stage['bracket'], len(live_nodes)))
        for node, entrants in live_nodes:
            match = new_match(tournament_id, node['code'], stage['bracket'], round_number, node['position'])
            for slot, (kind, ref) in entrants.items():
                if kind == 'team':
                    match[f'team_{slot}'] = ref
                    continue
                match[f'source_{slot}'] = f"{kind.capitalize()} {ref}"
                by_code[ref][f'{kind}_to'] = {'match': match['id'], 'slot': slot}
            by_code[node['code']] = match
            matches.append(match)

    return rounds, matches


def generate_single_elimination(tournament_id: str, teams: List[Team]) -> Dict:
    """
    Generate a single elimination bracket.

    Returns dict with:
    - 'rounds': round records, one per bracket round
    - 'matches': playable match records (byes already advanced)
    - 'positions': team_id -> bracket line
    - 'bracket_size': padded bracket size
    - 'byes': number of byes
    """
    stages = winners_bracket_stages(teams)
    rounds, matches = collapse_stages(tournament_id, stages)
    return {
        'rounds': rounds,
        'matches': matches,
        'positions': bracket_positions(teams),
        'bracket_size': calculate_bracket_size(len(teams)),
        'byes': calculate_byes(len(teams)),
    }
