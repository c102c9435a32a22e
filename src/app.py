"""
Bracket Engine - Flask JSON API over the bracket core.
"""
import os
import json
import time
from functools import wraps
from flask import Flask, request, jsonify, Response, stream_with_context, g
from brackets.errors import BracketError, ValidationError, InvariantViolation
from brackets.leaderboard import load_scoring
from brackets.models import Actor
from brackets.service import BracketService
from brackets.store import EntityStore

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('BRACKET_DATA_DIR', os.path.join(BASE_DIR, 'data'))
LOCK_TIMEOUT = float(os.environ.get('BRACKET_LOCK_TIMEOUT', '10'))

app.config.setdefault('DATA_DIR', DATA_DIR)
app.config.setdefault('LOCK_TIMEOUT', LOCK_TIMEOUT)
app.config.setdefault('STREAM_POLL_SECONDS', 3)

_services = {}


def get_service() -> BracketService:
    """Return the service bound to the configured data directory."""
    data_dir = app.config['DATA_DIR']
    service = _services.get(data_dir)
    if service is None:
        store = EntityStore(data_dir, lock_timeout=app.config['LOCK_TIMEOUT'])
        service = BracketService(store, scoring=load_scoring(data_dir))
        _services[data_dir] = service
        app.logger.info(f'Bracket store opened at {data_dir}')
    return service


def _header_list(name: str) -> list:
    raw = request.headers.get(name, '')
    return [part.strip() for part in raw.split(',') if part.strip()]


def actor_required(f):
    """Build the acting identity from upstream auth headers; 401 when missing."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = request.headers.get('X-Actor-Id', '').strip()
        if not actor_id:
            return jsonify({'error': 'Missing X-Actor-Id header', 'kind': 'unauthorized',
                            'code': 'unauthenticated'}), 401
        g.actor = Actor(
            actor_id,
            role=request.headers.get('X-Actor-Role', 'viewer').strip().lower(),
            sports=_header_list('X-Actor-Sports'),
            tournaments=_header_list('X-Actor-Tournaments'),
        )
        return f(*args, **kwargs)
    return decorated_function


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object', code='invalid_body')
    return data


def _int_arg(name: str, default):
    value = request.args.get(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f'{name} must be an integer', code='invalid_pagination')


@app.errorhandler(BracketError)
def handle_bracket_error(e):
    if isinstance(e, InvariantViolation):
        app.logger.error(f'Invariant violation on {request.method} {request.path}: {e.message} {e.context}')
    else:
        app.logger.info(f'{request.method} {request.path} rejected: {e.kind}/{e.code}: {e.message}')
    return jsonify(e.to_dict()), e.http_status


# ============================================================================
# Tournaments
# ============================================================================

@app.route('/api/tournaments', methods=['POST'])
@actor_required
def api_create_tournament():
    data = _json_body()
    tournament = get_service().create_tournament(
        g.actor,
        data.get('name'),
        data.get('format'),
        max_teams=data.get('max_teams'),
        sport=data.get('sport'),
        gender=data.get('gender'),
        season=data.get('season'),
        tournament_id=data.get('id'),
    )
    return jsonify(tournament), 201


@app.route('/api/tournaments/<tournament_id>', methods=['GET'])
def api_get_bracket(tournament_id):
    return jsonify(get_service().get_bracket(tournament_id))


@app.route('/api/tournaments/<tournament_id>', methods=['DELETE'])
@actor_required
def api_delete_tournament(tournament_id):
    return jsonify(get_service().delete_tournament(g.actor, tournament_id))


@app.route('/api/tournaments/<tournament_id>/teams', methods=['POST'])
@actor_required
def api_add_team(tournament_id):
    data = _json_body()
    entry = get_service().add_team(
        g.actor, tournament_id, data.get('team_id'), data.get('seed'), name=data.get('name'),
    )
    return jsonify(entry), 201


@app.route('/api/tournaments/<tournament_id>/teams/<team_id>', methods=['DELETE'])
@actor_required
def api_remove_team(tournament_id, team_id):
    get_service().remove_team(g.actor, tournament_id, team_id)
    return jsonify({'success': True})


@app.route('/api/tournaments/<tournament_id>/generate-bracket', methods=['POST'])
@actor_required
def api_generate_bracket(tournament_id):
    result = get_service().generate_bracket(g.actor, tournament_id)
    return jsonify(result), 201


@app.route('/api/tournaments/<tournament_id>/reset-bracket', methods=['POST'])
@actor_required
def api_reset_bracket(tournament_id):
    return jsonify(get_service().reset_bracket(g.actor, tournament_id))


@app.route('/api/tournaments/<tournament_id>/cancel', methods=['POST'])
@actor_required
def api_cancel_tournament(tournament_id):
    return jsonify(get_service().cancel_tournament(g.actor, tournament_id))


# ============================================================================
# Matches
# ============================================================================

@app.route('/api/matches/<match_id>', methods=['GET'])
def api_get_match(match_id):
    return jsonify(get_service().get_match(match_id))


@app.route('/api/matches/<match_id>/winner', methods=['POST'])
@actor_required
def api_declare_winner(match_id):
    """Declare a winner (null winner_team_id records a round robin draw)."""
    data = _json_body()
    score = data.get('score')
    if score is None and 'score_a' in data and 'score_b' in data:
        score = [data['score_a'], data['score_b']]
    result = get_service().declare_winner(
        g.actor, match_id, data.get('winner_team_id'), data.get('expected_revision'), score=score,
    )
    return jsonify(result)


@app.route('/api/matches/<match_id>/events', methods=['POST'])
@actor_required
def api_record_event(match_id):
    data = _json_body()
    result = get_service().record_event(
        g.actor, match_id, data.get('kind'), data.get('payload'), data.get('expected_revision'),
    )
    return jsonify(result), 201


@app.route('/api/matches/<match_id>/events', methods=['GET'])
def api_list_events(match_id):
    events = get_service().list_events(match_id, _int_arg('limit', None), _int_arg('offset', None))
    return jsonify({'events': events})


@app.route('/api/matches/<match_id>/undo', methods=['POST'])
@actor_required
def api_undo(match_id):
    return jsonify(get_service().revert_last(g.actor, match_id))


@app.route('/api/matches/<match_id>/events/stream')
def api_event_stream(match_id):
    """Server-Sent Events stream of a match's events, in creation order."""
    service = get_service()
    after = _int_arg('after', None)
    if after is None:
        try:
            after = int(request.headers.get('Last-Event-ID', 0) or 0)
        except ValueError:
            after = 0
    # Fail fast with a 404 before the stream opens.
    service.get_match(match_id)
    poll_seconds = app.config['STREAM_POLL_SECONDS']

    def generate():
        """Yield new events, checking the log every few seconds."""
        yield "event: connected\ndata: ok\n\n"
        last_seq = after
        idle = 0

        while True:
            events = service.events_since(match_id, last_seq)
            for event in events:
                last_seq = event['seq']
                yield f"id: {event['seq']}\nevent: {event['kind']}\ndata: {json.dumps(event)}\n\n"

            if events:
                idle = 0
            else:
                idle += poll_seconds
                # Send heartbeat every ~15 seconds to keep connection alive
                if idle >= 15:
                    idle = 0
                    yield ": heartbeat\n\n"
            time.sleep(poll_seconds)

    return Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'X-Accel-Buffering': 'no',
        },
    )


# ============================================================================
# Leaderboard
# ============================================================================

@app.route('/api/leaderboard/recompute', methods=['POST'])
@actor_required
def api_recompute_leaderboard():
    snapshot = get_service().recompute_leaderboard(g.actor, _json_body())
    return jsonify(snapshot)


@app.route('/api/leaderboard', methods=['GET'])
def api_get_leaderboard():
    scope = {
        'scope_type': request.args.get('scope_type'),
        'scope_id': request.args.get('scope_id'),
        'sport': request.args.get('sport') or None,
        'gender': request.args.get('gender') or None,
    }
    page = get_service().get_leaderboard(scope, _int_arg('limit', 50), _int_arg('offset', 0))
    return jsonify(page)


if __name__ == '__main__':
    app.run(debug=True, port=5000, threaded=True)
