"""Utility functions for huestatus.

This module contains helpers shared by the core and command modules:
- truncate_for_display: Bound diagnostic strings before they are printed
- report: Verbose progress output on stderr
- similarity_score: Fuzzy matching score between two strings
- find_similar_strings: Rank candidates by similarity
- parse_light_selection: Parse a comma separated list of light ids
"""

import click

# Length used when a diagnostic value has to be shortened
DISPLAY_LIMIT = 100


def truncate_for_display(value, limit: int = DISPLAY_LIMIT) -> str:
    """Shorten a diagnostic value so it can be printed safely.

    Values over the limit keep their beginning and end with an ellipsis in
    between, so a 100 character limit yields the first 50 characters, '...'
    and the last 47.

    Args:
        value: Any value; it is converted with str()
        limit: Maximum length of the returned string (minimum 10)

    Returns:
        The value as a string of at most ``limit`` characters
    """
    text = str(value)
    limit = max(limit, 10)
    if len(text) <= limit:
        return text
    head = limit // 2
    tail = limit - head - 3
    return f"{text[:head]}...{text[-tail:]}"


def report(message: str, verbose: bool, fg: str | None = None):
    """Print a progress message to stderr when verbose output is enabled."""
    if verbose:
        click.secho(message, fg=fg, err=True)


def similarity_score(s1: str, s2: str) -> int:
    """Calculate similarity score between two strings.

    Used for command typo suggestions and matching light names.

    Args:
        s1: First string to compare
        s2: Second string to compare

    Returns:
        Similarity score:
        - 100: Exact match (case-insensitive)
        - 80: Prefix match
        - 60: Substring match
        - 0-50: Character sequence match (proportional to matching characters)
        - 0: No match
    """
    s1_lower = s1.lower()
    s2_lower = s2.lower()

    if s1_lower == s2_lower:
        return 100

    if s2_lower.startswith(s1_lower) or s1_lower.startswith(s2_lower):
        return 80

    if s1_lower in s2_lower or s2_lower in s1_lower:
        return 60

    # Count characters of s1 found in order within s2
    matches = 0
    j = 0
    for char in s1_lower:
        while j < len(s2_lower):
            j += 1
            if s2_lower[j - 1] == char:
                matches += 1
                break

    if matches > 0:
        score = int((matches / max(len(s1_lower), len(s2_lower))) * 50)
        return score if score > 20 else 0

    return 0


def find_similar_strings(target: str, candidates: list[str], limit: int = 3) -> list[str]:
    """Return the candidates most similar to target, best match first."""
    scored = [(candidate, similarity_score(target, candidate)) for candidate in candidates]
    matches = sorted((pair for pair in scored if pair[1] > 0), key=lambda pair: pair[1], reverse=True)
    return [candidate for candidate, _ in matches[:limit]]


def parse_light_selection(text: str, available: list[str]) -> list[str]:
    """Parse a comma separated selection of light ids.

    Args:
        text: User input such as "1, 3,4" or "all"
        available: Light ids that may be selected

    Returns:
        Selected ids in the order given, without duplicates

    Raises:
        ValueError: If an id is not in ``available``
    """
    if text.strip().lower() in ('', 'all'):
        return list(available)

    selected = []
    for part in text.split(','):
        light_id = part.strip()
        if not light_id:
            continue
        if light_id not in available:
            raise ValueError(f"Unknown light id: {truncate_for_display(light_id, 20)}")
        if light_id not in selected:
            selected.append(light_id)
    return selected
