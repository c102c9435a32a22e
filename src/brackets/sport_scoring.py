"""
Sport-specific scoring terminology for human readable event summaries.
"""
from .models import SCHEDULED, LIVE, COMPLETED, CANCELLED

SCORING_TERMS = {
    'football': ('goal', 'goals', 'scored'),
    'soccer': ('goal', 'goals', 'scored'),
    'cricket': ('run', 'runs', 'scored'),
    'basketball': ('basket', 'baskets', 'scored'),
    'tennis': ('point', 'points', 'won'),
}
DEFAULT_TERMS = ('point', 'points', 'scored')

STATUS_MESSAGES = {
    LIVE: 'Match is live',
    COMPLETED: 'Match completed',
    CANCELLED: 'Match cancelled',
    SCHEDULED: 'Match scheduled',
}


def get_scoring_terms(sport):
    """Return (unit, units, past tense verb) for a sport name."""
    return SCORING_TERMS.get((sport or '').lower().strip(), DEFAULT_TERMS)


def scoring_message(team_name, increase, sport):
    unit, units, verb = get_scoring_terms(sport)
    return f"{team_name} {verb} {increase} {unit if increase == 1 else units}"


def status_message(prev_status, new_status):
    if new_status == LIVE and prev_status == SCHEDULED:
        return 'Match started'
    return STATUS_MESSAGES.get(new_status, f'Status changed to {new_status}')


def describe_score_change(prior, current, names, sport):
    """
    Summarize a score update the way the live feed shows it.

    ``prior`` and ``current`` hold score_a, score_b and status; ``names``
    maps 'a'/'b' to display names.
    """
    parts = []
    for slot in ('a', 'b'):
        increase = current[f'score_{slot}'] - prior[f'score_{slot}']
        if increase > 0:
            parts.append(scoring_message(names[slot], increase, sport))
    if prior['status'] != current['status']:
        parts.append(status_message(prior['status'], current['status']))
    if not parts:
        parts.append(f"Score corrected to {current['score_a']}-{current['score_b']}")
    return '; '.join(parts)
