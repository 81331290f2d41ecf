"""Bingo line detection for 5x5 grid challenges."""

from collections.abc import Iterable

from .schemas import ChallengeDefinition

GRID_SIZE = 5


def is_bingo_grid(challenge: ChallengeDefinition) -> bool:
    """True for challenges laid out as a full 5x5 grid."""
    return len(challenge.objectives) == GRID_SIZE * GRID_SIZE


def bingo_lines(objective_ids: list[str]) -> list[tuple[str, list[str]]]:
    """Every line of the grid, in the order they are checked.

    Rows first, then columns, then the main and anti diagonals.
    """
    n = GRID_SIZE
    if len(objective_ids) != n * n:
        return []

    lines = []
    for i in range(n):
        lines.append((f"row-{i}", objective_ids[i * n : (i + 1) * n]))
    for j in range(n):
        lines.append((f"col-{j}", [objective_ids[i * n + j] for i in range(n)]))
    lines.append(("diag-main", [objective_ids[i * n + i] for i in range(n)]))
    lines.append(("diag-anti", [objective_ids[i * n + (n - 1 - i)] for i in range(n)]))
    return lines


def completed_objective_ids(
    challenge: ChallengeDefinition, progress: dict[str, float]
) -> set[str]:
    """Cells whose value has reached a positive target."""
    completed = set()
    for objective in challenge.objectives:
        value = progress.get(objective.id, 0.0)
        if value > 0 and value >= objective.target_value:
            completed.add(objective.id)
    return completed


def detect_bingo_line(
    challenge: ChallengeDefinition,
    completed_ids: Iterable[str],
    announced: Iterable[str] = (),
):
    """First complete line that has not been announced yet.

    Args:
        challenge: Grid challenge
        completed_ids: Ids of completed cells
        announced: Line keys already announced to the user

    Returns:
        Line key such as ``row-2`` or ``diag-anti``, or None
    """
    if not is_bingo_grid(challenge):
        return None

    done = set(completed_ids)
    seen = set(announced)
    for key, ids in bingo_lines(challenge.objective_ids):
        if key in seen:
            continue
        if all(oid in done for oid in ids):
            return key
    return None
