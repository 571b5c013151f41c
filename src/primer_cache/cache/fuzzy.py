from __future__ import annotations


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit-cost insertions, deletions and substitutions."""
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(a) + 1))
    for i, b_char in enumerate(b, start=1):
        current = [i]
        for j, a_char in enumerate(a, start=1):
            if a_char == b_char:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j - 1], current[j - 1], previous[j]))
        previous = current
    return previous[-1]
