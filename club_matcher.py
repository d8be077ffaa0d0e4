# club_matcher.py
from rapidfuzz import fuzz

from data.clubs import clubs


def match_club(value, choices=clubs, threshold=85):
    """Map a free-text club name onto the closest catalogue entry.

    Exact entries are returned as-is; anything scoring below the threshold is
    returned unchanged so validation can reject it.
    """
    value = (value or '').strip()
    if not value or value in choices:
        return value
    best_score = 0
    best_club = None
    for club in choices:
        score = fuzz.ratio(value.lower(), club.lower())
        if score > best_score:
            best_score = score
            best_club = club
    if best_score >= threshold:
        return best_club
    return value
