"""
Tests for leaderboard aggregation and scoring configuration.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from brackets.errors import NotFoundError, UnauthorizedError, ValidationError
from brackets.leaderboard import (
    compute_standings,
    get_default_scoring,
    load_scoring,
    normalize_scope,
    scope_key,
)
from brackets.service import BracketService
from conftest import StepClock

SEASON_MEN = {'scope_type': 'season', 'scope_id': '2026', 'sport': 'football', 'gender': 'men'}


@pytest.fixture
def played_cup(service, moderator, build_tournament):
    """A beats D 2-0, C beats B 1-0, A beats C 3-1."""
    build_tournament('single_elimination', ['A', 'B', 'C', 'D'], tournament_id='cup')
    service.declare_winner(moderator, 'cup:W1-M1', 'A', 1, score=(2, 0))
    service.declare_winner(moderator, 'cup:W1-M2', 'C', 1, score=(0, 1))
    service.declare_winner(moderator, 'cup:W2-M1', 'A', 1, score=(3, 1))
    return 'cup'


def ranking(snapshot):
    return [(e['rank'], e['team_id'], e['points']) for e in snapshot['entries']]


class TestComputeStandings:

    def test_tie_breakers(self):
        tournaments = [{'id': 't', 'format': 'round_robin'}]
        matches = [
            {'tournament_id': 't', 'status': 'completed', 'team_a': 'X', 'team_b': 'Y',
             'score_a': 2, 'score_b': 0, 'winner': 'X', 'is_draw': False},
            {'tournament_id': 't', 'status': 'completed', 'team_a': 'Z', 'team_b': 'W',
             'score_a': 2, 'score_b': 0, 'winner': 'Z', 'is_draw': False},
            {'tournament_id': 't', 'status': 'completed', 'team_a': 'V', 'team_b': 'U',
             'score_a': 4, 'score_b': 2, 'winner': 'V', 'is_draw': False},
        ]

        standings = compute_standings(tournaments, matches, get_default_scoring())

        # V, X, Z all have 3 points and +2; V scored more; X before Z by id.
        assert [e['team_id'] for e in standings] == ['V', 'X', 'Z', 'U', 'W', 'Y']
        assert [e['rank'] for e in standings] == [1, 2, 3, 4, 5, 6]

    def test_draw_points(self):
        tournaments = [{'id': 't', 'format': 'round_robin'}]
        matches = [
            {'tournament_id': 't', 'status': 'completed', 'team_a': 'X', 'team_b': 'Y',
             'score_a': 1, 'score_b': 1, 'winner': None, 'is_draw': True},
        ]

        standings = compute_standings(tournaments, matches, get_default_scoring())

        assert [(e['team_id'], e['points'], e['draws']) for e in standings] == [('X', 1, 1), ('Y', 1, 1)]

    def test_ignores_unfinished_matches(self):
        tournaments = [{'id': 't', 'format': 'single_elimination'}]
        matches = [
            {'tournament_id': 't', 'status': 'live', 'team_a': 'X', 'team_b': 'Y',
             'score_a': 5, 'score_b': 0, 'winner': None, 'is_draw': False},
        ]

        standings = compute_standings(tournaments, matches, get_default_scoring(), team_ids=['X', 'Y'])

        assert all(e['played'] == 0 for e in standings)
        assert [e['team_id'] for e in standings] == ['X', 'Y']


class TestRecompute:

    def test_tournament_scope(self, service, admin, played_cup):
        snapshot = service.recompute_leaderboard(admin, {'scope_type': 'tournament', 'scope_id': 'cup'})

        assert ranking(snapshot) == [(1, 'A', 6), (2, 'C', 3), (3, 'B', 0), (4, 'D', 0)]
        leader = snapshot['entries'][0]
        assert (leader['wins'], leader['losses'], leader['score_diff']) == (2, 0, 4)
        assert snapshot['match_count'] == 3
        assert snapshot['computed_at']

    def test_recompute_is_idempotent(self, service, admin, played_cup):
        scope = {'scope_type': 'tournament', 'scope_id': 'cup'}

        first = service.recompute_leaderboard(admin, scope)
        second = service.recompute_leaderboard(admin, scope)

        assert first['entries'] == second['entries']
        assert first['computed_at'] != second['computed_at']

    def test_gender_filter(self, service, admin, moderator, build_tournament, played_cup):
        build_tournament('single_elimination', ['E', 'F'], gender='women', tournament_id='wcup')
        service.declare_winner(moderator, 'wcup:W1-M1', 'E', 1, score=(1, 0))

        men = service.recompute_leaderboard(admin, SEASON_MEN)
        everyone = service.recompute_leaderboard(admin, dict(SEASON_MEN, gender=None))

        assert {e['team_id'] for e in men['entries']} == {'A', 'B', 'C', 'D'}
        assert {e['team_id'] for e in everyone['entries']} == {'A', 'B', 'C', 'D', 'E', 'F'}
        assert men['id'] != everyone['id']

    def test_deleted_and_draft_tournaments_excluded(self, service, admin, build_tournament, played_cup):
        build_tournament('round_robin', ['G', 'H'], tournament_id='draft', generate=False)
        service.delete_tournament(admin, 'cup')

        snapshot = service.recompute_leaderboard(admin, SEASON_MEN)

        assert snapshot['entries'] == []
        assert snapshot['match_count'] == 0

    def test_unplayed_entrants_listed(self, service, admin, build_tournament):
        build_tournament('round_robin', ['A', 'B', 'C'], tournament_id='league')

        snapshot = service.recompute_leaderboard(admin, {'scope_type': 'tournament', 'scope_id': 'league'})

        assert [e['team_id'] for e in snapshot['entries']] == ['A', 'B', 'C']

    def test_revert_reflected_on_next_recompute(self, service, admin, moderator, played_cup):
        scope = {'scope_type': 'tournament', 'scope_id': 'cup'}
        service.revert_last(moderator, 'cup:W2-M1')

        snapshot = service.recompute_leaderboard(admin, scope)

        assert ranking(snapshot)[:2] == [(1, 'A', 3), (2, 'C', 3)]

    def test_custom_scoring(self, store, admin, moderator):
        scoring = get_default_scoring()
        scoring['elimination']['win'] = 2
        service = BracketService(store, scoring=scoring, clock=StepClock())
        service.create_tournament(admin, 'Cup', 'single_elimination', sport='football', tournament_id='cup')
        service.add_team(admin, 'cup', 'A', 1)
        service.add_team(admin, 'cup', 'B', 2)
        service.generate_bracket(admin, 'cup')
        service.declare_winner(moderator, 'cup:W1-M1', 'B', 1)

        snapshot = service.recompute_leaderboard(admin, {'scope_type': 'tournament', 'scope_id': 'cup'})

        assert ranking(snapshot) == [(1, 'B', 2), (2, 'A', 0)]

    def test_moderator_cannot_recompute(self, service, moderator):
        with pytest.raises(UnauthorizedError):
            service.recompute_leaderboard(moderator, SEASON_MEN)


class TestGetLeaderboard:

    def test_paging(self, service, admin, played_cup):
        scope = {'scope_type': 'tournament', 'scope_id': 'cup'}
        service.recompute_leaderboard(admin, scope)

        page = service.get_leaderboard(scope, limit=2, offset=1)

        assert [e['team_id'] for e in page['entries']] == ['C', 'B']
        assert page['total'] == 4

    def test_not_computed(self, service):
        with pytest.raises(NotFoundError) as exc:
            service.get_leaderboard({'scope_type': 'season', 'scope_id': '1999'})
        assert exc.value.code == 'no_leaderboard'


class TestScopes:

    def test_invalid_scope_type(self):
        with pytest.raises(ValidationError) as exc:
            normalize_scope({'scope_type': 'league', 'scope_id': 'x'})
        assert exc.value.code == 'invalid_scope'

    def test_missing_scope_id(self):
        with pytest.raises(ValidationError):
            normalize_scope({'scope_type': 'season'})

    def test_scope_key(self):
        assert scope_key(normalize_scope({'scope_type': 'season', 'scope_id': 2026})) == 'season:2026:*:*'
        assert scope_key(normalize_scope(SEASON_MEN)) == 'season:2026:football:men'


class TestScoringConfig:

    def test_defaults_without_file(self, tmp_path):
        assert load_scoring(str(tmp_path)) == get_default_scoring()

    def test_file_overrides_merge_with_defaults(self, tmp_path):
        (tmp_path / 'scoring.yaml').write_text("round_robin:\n  win: 2\n")

        scoring = load_scoring(str(tmp_path))

        assert scoring['round_robin'] == {'win': 2, 'draw': 1, 'loss': 0}
        assert scoring['elimination'] == {'win': 3, 'loss': 0}
