# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Pure lexical helpers: edit distance, prefix fragments and keyboard typos.

Fragments are what the lexical index stores instead of vectors:
- prefixes of every word and of the whole text ("mont", "montm", ...)
- keyboard-adjacency typo variants of 4/5/6 character windows

No I/O, no state. Everything here works on already normalized text.
"""

# AZERTY neighbours, letters only
KEYBOARD_NEIGHBORS: dict[str, tuple[str, ...]] = {
    "a": ("z", "q", "s"),
    "z": ("a", "e", "s"),
    "e": ("z", "r", "d"),
    "r": ("e", "t", "f"),
    "t": ("r", "y", "g"),
    "y": ("t", "u", "h"),
    "u": ("y", "i", "j"),
    "i": ("u", "o", "k"),
    "o": ("i", "p", "l"),
    "p": ("o", "m"),
    "q": ("a", "s", "w"),
    "s": ("a", "z", "d", "q"),
    "d": ("s", "e", "f"),
    "f": ("d", "r", "g"),
    "g": ("f", "t", "h"),
    "h": ("g", "y", "j"),
    "j": ("h", "u", "k"),
    "k": ("j", "i", "l"),
    "l": ("k", "o", "m"),
    "m": ("l", "p"),
}

TYPO_WINDOW_SIZES = (4, 5, 6)


def normalize(text: str) -> str:
    return text.strip().lower()


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum number of single-character insertions, deletions or
    substitutions turning a into b."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            ))
        previous = current
    return previous[-1]


def generate_char_array(text: str, min_length: int = 3, max_length: int = 8) -> list[str]:
    """Lower-cased prefixes of each word and of the whole text, with
    lengths in [min_length, max_length]. Deduplicated, order kept."""
    fragments: dict[str, None] = {}
    candidates = [w.strip() for w in text.split(" ")]
    candidates.append(text)
    for candidate in candidates:
        upper = min(len(candidate), max_length)
        for size in range(max(min_length, 1), upper + 1):
            fragments[candidate[:size].lower()] = None
    return list(fragments)


def generate_typos(text: str, max_length: int = 50) -> set[str]:
    """Keyboard typos of every 4/5/6 character window of text.

    The first letter of a window is replaced by, or prefixed with, each of
    its keyboard neighbours and also dropped. The last letter gets the same
    treatment when it has neighbours. Text longer than max_length yields
    no typos.
    """
    typos: set[str] = set()
    if len(text) > max_length:
        return typos

    for size in TYPO_WINDOW_SIZES:
        for start in range(0, len(text) - size + 1):
            segment = text[start:start + size]

            first = segment[0]
            for neighbor in KEYBOARD_NEIGHBORS.get(first, ()):
                typos.add(neighbor + segment[1:])
                typos.add(neighbor + segment)
            typos.add(segment[1:])

            last = segment[-1]
            neighbors = KEYBOARD_NEIGHBORS.get(last, ())
            if neighbors:
                for neighbor in neighbors:
                    typos.add(segment[:-1] + neighbor)
                    typos.add(segment + neighbor)
                typos.add(segment[:-1])

    return typos


def generate_fragments(
    text: str, min_length: int = 3, max_fragment_length: int = 8, max_length: int = 50,
) -> list[str]:
    """Everything the lexical index stores for one text, sorted."""
    text = normalize(text)
    if not text:
        return []
    fragments = set(generate_char_array(text, min_length, max_fragment_length))
    fragments.update(generate_typos(text, max_length))
    return sorted(f for f in fragments if f.strip())


def best_fragment_distance(
    words: list[str], fragments, max_fragment_length: int = 8,
    max_word_distance: int = 2, max_total_distance: int = 6,
) -> int | None:
    """Smallest word-to-fragment edit distance over the fragments that
    match, or None when none does.

    A fragment matches when some query word (cut to the fragment cap) is
    within max_word_distance of it and the distances of all query words
    add up to at most max_total_distance.
    """
    terms = [w[:max_fragment_length] for w in words]
    if not terms:
        return None
    best = None
    for fragment in fragments:
        distances = [levenshtein_distance(t, fragment) for t in terms]
        closest = min(distances)
        if closest > max_word_distance or sum(distances) > max_total_distance:
            continue
        if best is None or closest < best:
            best = closest
            if best == 0:
                break
    return best
