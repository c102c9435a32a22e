"""
Leaderboard aggregation over completed matches.

Standings are always rebuilt from scratch for a scope and replace the stored
snapshot wholesale; nothing is patched incrementally.
"""
import logging
import os
from typing import Dict, Iterable, List

import yaml

from .errors import ValidationError
from .models import ROUND_ROBIN, COMPLETED, DRAFT

logger = logging.getLogger(__name__)

SCOPE_TYPES = ('tournament', 'season')
SCORING_FILE = 'scoring.yaml'


def get_default_scoring() -> Dict:
    """Return default points per result, keyed by format family."""
    return {
        'round_robin': {'win': 3, 'draw': 1, 'loss': 0},
        'elimination': {'win': 3, 'loss': 0},
    }


def load_scoring(data_dir: str) -> Dict:
    """Load scoring from YAML file, merging with defaults."""
    defaults = get_default_scoring()
    path = os.path.join(data_dir, SCORING_FILE)
    if not os.path.exists(path):
        return defaults
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if not data:
        return defaults
    for family, points in defaults.items():
        merged = dict(points)
        merged.update(data.get(family) or {})
        data[family] = merged
    return data


def normalize_scope(scope: Dict) -> Dict:
    """Validate a scope mapping and fill optional filters with None."""
    if not scope or scope.get('scope_type') not in SCOPE_TYPES:
        raise ValidationError(f"scope_type must be one of {', '.join(SCOPE_TYPES)}", code='invalid_scope')
    if not scope.get('scope_id'):
        raise ValidationError('scope_id is required', code='invalid_scope')
    return {
        'scope_type': scope['scope_type'],
        'scope_id': str(scope['scope_id']),
        'sport': scope.get('sport'),
        'gender': scope.get('gender'),
    }


def scope_key(scope: Dict) -> str:
    return ':'.join([
        scope['scope_type'],
        scope['scope_id'],
        scope.get('sport') or '*',
        scope.get('gender') or '*',
    ])


def tournaments_in_scope(tournaments: Iterable[Dict], scope: Dict) -> List[Dict]:
    selected = []
    for t in tournaments:
        if t.get('deleted_at') or t['status'] == DRAFT:
            continue
        if scope['scope_type'] == 'tournament' and t['id'] != scope['scope_id']:
            continue
        if scope['scope_type'] == 'season' and str(t.get('season')) != scope['scope_id']:
            continue
        if scope.get('sport') and t.get('sport') != scope['sport']:
            continue
        if scope.get('gender') and t.get('gender') != scope['gender']:
            continue
        selected.append(t)
    return selected


def _blank_entry(team_id):
    return {
        'team_id': team_id,
        'played': 0,
        'wins': 0,
        'draws': 0,
        'losses': 0,
        'points': 0,
        'score_for': 0,
        'score_against': 0,
        'score_diff': 0,
    }


def compute_standings(tournaments: List[Dict], matches: Iterable[Dict], scoring: Dict,
                      team_ids: Iterable = ()) -> List[Dict]:
    """
    Rank teams from completed matches.

    Ranking: points -> score differential -> score for -> team id. Teams in
    ``team_ids`` appear even before they have played.

    Returns a list of entry dicts with 'rank' set, best first.
    """
    formats = {t['id']: t['format'] for t in tournaments}
    stats = {team_id: _blank_entry(team_id) for team_id in team_ids}

    for match in matches:
        fmt = formats.get(match['tournament_id'])
        if fmt is None or match['status'] != COMPLETED:
            continue
        team_a, team_b = match['team_a'], match['team_b']
        if team_a is None or team_b is None:
            continue
        points = scoring['round_robin'] if fmt == ROUND_ROBIN else scoring['elimination']
        a = stats.setdefault(team_a, _blank_entry(team_a))
        b = stats.setdefault(team_b, _blank_entry(team_b))

        a['played'] += 1
        b['played'] += 1
        a['score_for'] += match['score_a']
        a['score_against'] += match['score_b']
        b['score_for'] += match['score_b']
        b['score_against'] += match['score_a']

        if match.get('is_draw'):
            a['draws'] += 1
            b['draws'] += 1
            a['points'] += points.get('draw', 0)
            b['points'] += points.get('draw', 0)
            continue

        winner, loser = (a, b) if match['winner'] == team_a else (b, a)
        winner['wins'] += 1
        loser['losses'] += 1
        winner['points'] += points['win']
        loser['points'] += points['loss']

    for entry in stats.values():
        entry['score_diff'] = entry['score_for'] - entry['score_against']

    ranked = sorted(
        stats.values(),
        key=lambda x: (-x['points'], -x['score_diff'], -x['score_for'], str(x['team_id']))
    )
    for rank, entry in enumerate(ranked, start=1):
        entry['rank'] = rank
    return ranked


def recompute(txn, scope: Dict, scoring: Dict, computed_at: str) -> Dict:
    """Rebuild and store the snapshot for ``scope`` inside ``txn``."""
    scope = normalize_scope(scope)
    tournaments = tournaments_in_scope(txn.table('tournaments').values(), scope)
    ids = {t['id'] for t in tournaments}
    matches = [m for m in txn.table('matches').values() if m['tournament_id'] in ids]
    entrants = [tt['team_id'] for tt in txn.table('tournament_teams').values() if tt['tournament_id'] in ids]

    snapshot = {
        'id': scope_key(scope),
        'scope': scope,
        'computed_at': computed_at,
        'match_count': sum(1 for m in matches if m['status'] == COMPLETED),
        'entries': compute_standings(tournaments, matches, scoring, entrants),
    }
    txn.put('leaderboards', snapshot)
    logger.info('Leaderboard %s recomputed from %d completed matches', snapshot['id'], snapshot['match_count'])
    return snapshot
