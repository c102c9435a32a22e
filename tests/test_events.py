"""
Tests for the match event log: score updates, incidents, listing and
subscriber delivery.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from brackets.errors import ConflictError, ValidationError
from brackets.sport_scoring import describe_score_change, get_scoring_terms, scoring_message


@pytest.fixture
def cup(build_tournament):
    return build_tournament('single_elimination', ['A', 'B', 'C', 'D'], tournament_id='cup')


class TestScoreUpdate:

    def test_score_update_records_prior_and_new(self, service, moderator, cup):
        result = service.record_event(
            moderator, 'cup:W1-M1', 'score_update', {'score_a': 2, 'score_b': 1, 'status': 'live'}, 1,
        )

        match = result['match']
        assert (match['score_a'], match['score_b'], match['status']) == (2, 1, 'live')
        assert match['revision'] == 2

        event = result['event']
        assert event['kind'] == 'score_update'
        assert event['actor'] == 'mod-1'
        assert event['payload']['prior'] == {'score_a': 0, 'score_b': 0, 'status': 'scheduled'}
        assert event['payload']['new'] == {'score_a': 2, 'score_b': 1, 'status': 'live'}
        assert event['revision'] == 1
        assert event['result_revision'] == 2

    def test_summary_uses_sport_terms(self, service, moderator, cup):
        result = service.record_event(
            moderator, 'cup:W1-M1', 'score_update', {'score_a': 2, 'score_b': 1, 'status': 'live'}, 1,
        )
        assert result['event']['payload']['summary'] == "A scored 2 goals; D scored 1 goal; Match started"

    def test_stale_revision(self, service, moderator, cup):
        service.record_event(moderator, 'cup:W1-M1', 'score_update', {'score_a': 1, 'score_b': 0}, 1)

        with pytest.raises(ConflictError) as exc:
            service.record_event(moderator, 'cup:W1-M1', 'score_update', {'score_a': 2, 'score_b': 0}, 1)
        assert exc.value.code == 'stale_revision'
        assert service.get_match('cup:W1-M1')['score_a'] == 1

    def test_cannot_complete_through_score_update(self, service, moderator, cup):
        with pytest.raises(ValidationError) as exc:
            service.record_event(
                moderator, 'cup:W1-M1', 'score_update', {'score_a': 1, 'score_b': 0, 'status': 'completed'}, 1,
            )
        assert exc.value.code == 'invalid_status'

    def test_rejected_on_completed_match(self, service, moderator, cup):
        service.declare_winner(moderator, 'cup:W1-M1', 'A', 1)

        with pytest.raises(ValidationError) as exc:
            service.record_event(moderator, 'cup:W1-M1', 'score_update', {'score_a': 1, 'score_b': 0}, 2)
        assert exc.value.code == 'match_not_playable'

    def test_rejected_on_placeholder_match(self, service, moderator, cup):
        with pytest.raises(ValidationError) as exc:
            service.record_event(moderator, 'cup:W2-M1', 'score_update', {'score_a': 1, 'score_b': 0}, 1)
        assert exc.value.code == 'match_not_playable'

    def test_negative_score(self, service, moderator, cup):
        with pytest.raises(ValidationError) as exc:
            service.record_event(moderator, 'cup:W1-M1', 'score_update', {'score_a': -1, 'score_b': 0}, 1)
        assert exc.value.code == 'invalid_score'


class TestIncidents:

    def test_incident_does_not_touch_match(self, service, moderator, cup):
        result = service.record_event(
            moderator, 'cup:W1-M1', 'incident', {'type': 'yellow_card', 'player': 'p7', 'note': 'Late tackle'},
        )

        assert result['match']['revision'] == 1
        event = result['event']
        assert event['revision'] == event['result_revision'] == 1
        assert event['payload'] == {
            'note': 'Late tackle', 'type': 'yellow_card', 'player': 'p7', 'media_url': None,
        }

    def test_incident_needs_note_or_type(self, service, moderator, cup):
        with pytest.raises(ValidationError) as exc:
            service.record_event(moderator, 'cup:W1-M1', 'incident', {'player': 'p7'})
        assert exc.value.code == 'invalid_payload'

    def test_unknown_kind(self, service, moderator, cup):
        with pytest.raises(ValidationError) as exc:
            service.record_event(moderator, 'cup:W1-M1', 'substitution', {}, 1)
        assert exc.value.code == 'invalid_kind'

    def test_revert_kind_not_recordable(self, service, moderator, cup):
        with pytest.raises(ValidationError):
            service.record_event(moderator, 'cup:W1-M1', 'revert', {}, 1)

    def test_winner_declared_through_record_event(self, service, moderator, cup):
        result = service.record_event(moderator, 'cup:W1-M1', 'winner_declared', {'winner_team_id': 'A'}, 1)
        assert result['match']['winner'] == 'A'
        assert result['event']['kind'] == 'winner_declared'


class TestListEvents:

    def _fill(self, service, moderator):
        for i in range(5):
            service.record_event(moderator, 'cup:W1-M1', 'incident', {'note': f'note {i}'})

    def test_newest_first(self, service, moderator, cup):
        self._fill(service, moderator)

        events = service.list_events('cup:W1-M1')
        assert [e['payload']['note'] for e in events] == [f'note {i}' for i in range(4, -1, -1)]

    def test_pagination(self, service, moderator, cup):
        self._fill(service, moderator)

        page = service.list_events('cup:W1-M1', limit=2, offset=1)
        assert [e['payload']['note'] for e in page] == ['note 3', 'note 2']

    def test_events_are_per_match(self, service, moderator, cup):
        self._fill(service, moderator)
        service.record_event(moderator, 'cup:W1-M2', 'incident', {'note': 'other'})

        assert len(service.list_events('cup:W1-M1')) == 5
        assert len(service.list_events('cup:W1-M2')) == 1

    def test_negative_limit(self, service, cup):
        with pytest.raises(ValidationError) as exc:
            service.list_events('cup:W1-M1', limit=-1)
        assert exc.value.code == 'invalid_pagination'

    def test_sequence_numbers_increase(self, service, moderator, cup):
        self._fill(service, moderator)

        seqs = [e['seq'] for e in reversed(service.list_events('cup:W1-M1'))]
        assert seqs == sorted(seqs)
        assert len(set(seqs)) == 5


class TestSubscribers:

    def test_subscriber_sees_events_in_order(self, service, moderator, cup):
        received = []
        service.subscribe('cup:W1-M1', received.append)

        service.record_event(moderator, 'cup:W1-M1', 'score_update', {'score_a': 1, 'score_b': 0, 'status': 'live'}, 1)
        service.record_event(moderator, 'cup:W1-M1', 'incident', {'note': 'Timeout'})
        service.declare_winner(moderator, 'cup:W1-M1', 'A', 2)

        assert [e['kind'] for e in received] == ['score_update', 'incident', 'winner_declared']

    def test_subscriber_only_sees_its_match(self, service, moderator, cup):
        received = []
        service.subscribe('cup:W1-M2', received.append)

        service.record_event(moderator, 'cup:W1-M1', 'incident', {'note': 'Timeout'})

        assert received == []

    def test_unsubscribe(self, service, moderator, cup):
        received = []
        unsubscribe = service.subscribe('cup:W1-M1', received.append)
        unsubscribe()

        service.record_event(moderator, 'cup:W1-M1', 'incident', {'note': 'Timeout'})

        assert received == []

    def test_failed_write_publishes_nothing(self, service, moderator, cup):
        received = []
        service.subscribe('cup:W1-M1', received.append)

        with pytest.raises(ConflictError):
            service.record_event(moderator, 'cup:W1-M1', 'score_update', {'score_a': 1, 'score_b': 0}, 7)

        assert received == []

    def test_failing_subscriber_does_not_break_others(self, service, moderator, cup):
        received = []

        def broken(event):
            raise RuntimeError('boom')

        service.subscribe('cup:W1-M1', broken)
        service.subscribe('cup:W1-M1', received.append)

        result = service.record_event(moderator, 'cup:W1-M1', 'incident', {'note': 'Timeout'})

        assert [e['id'] for e in received] == [result['event']['id']]


class TestSportScoring:

    def test_terms(self):
        assert get_scoring_terms('Cricket') == ('run', 'runs', 'scored')
        assert get_scoring_terms(None) == ('point', 'points', 'scored')

    def test_singular(self):
        assert scoring_message('Falcons', 1, 'football') == "Falcons scored 1 goal"
        assert scoring_message('Falcons', 3, 'tennis') == "Falcons won 3 points"

    def test_correction(self):
        prior = {'score_a': 3, 'score_b': 1, 'status': 'live'}
        current = {'score_a': 2, 'score_b': 1, 'status': 'live'}
        assert describe_score_change(prior, current, {'a': 'X', 'b': 'Y'}, 'football') == "Score corrected to 2-1"
