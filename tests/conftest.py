"""
Shared pytest fixtures for bracket engine tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - skip the threaded concurrency tests
"""
import pytest
import sys
import os
from datetime import datetime, timedelta, timezone

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from brackets.models import Actor, Team
from brackets.service import BracketService
from brackets.store import EntityStore


def pytest_configure(config):
    config.addinivalue_line('markers', 'slow: threaded tests that take a few seconds')


class StepClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self):
        self.now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now.isoformat()


def make_teams(count):
    """Teams T1..Tn seeded 1..n."""
    return [Team(f"T{i}", i) for i in range(1, count + 1)]


@pytest.fixture
def store(tmp_path):
    return EntityStore(str(tmp_path / "data"), lock_timeout=5)


@pytest.fixture
def service(store):
    return BracketService(store, clock=StepClock())


@pytest.fixture
def admin():
    return Actor('admin-1', role='admin')


@pytest.fixture
def moderator():
    return Actor('mod-1', role='moderator', sports=['football'])


@pytest.fixture
def viewer():
    return Actor('viewer-1', role='viewer')


@pytest.fixture
def build_tournament(service, admin):
    """Create, populate and generate a tournament; returns its bracket."""
    def _build(format, team_ids, sport='football', gender='men', season='2026',
               tournament_id=None, generate=True):
        tournament = service.create_tournament(
            admin, f"{format} cup", format, sport=sport, gender=gender,
            season=season, tournament_id=tournament_id,
        )
        for seed, team_id in enumerate(team_ids, start=1):
            service.add_team(admin, tournament['id'], team_id, seed)
        if generate:
            service.generate_bracket(admin, tournament['id'])
        return service.get_bracket(tournament['id'])
    return _build


def match_by_code(bracket, code):
    for match in bracket['matches']:
        if match['code'] == code:
            return match
    raise KeyError(code)


def round_of(bracket, match):
    for r in bracket['rounds']:
        if r['id'] == match['round_id']:
            return r
    raise KeyError(match['round_id'])
