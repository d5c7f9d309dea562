"""
Kanban helpers — column grouping and drag-and-drop reordering.

Pure functions over any objects with ``id``, ``status`` and ``order_index``
attributes (Task and PersonalTask). They mutate the objects in place and
report which ones changed; persisting is the caller's job.
"""

from opsdesk.models.task import TASK_COLUMNS

FALLBACK_COLUMN = "backlog"


def column_for(status: str | None) -> str:
    """Column a status renders in; unknown statuses land in backlog."""
    return status if status in TASK_COLUMNS else FALLBACK_COLUMN


def sort_key(item):
    return item.order_index or 0


def group_by_column(items) -> dict[str, list]:
    """``{column: [items sorted by order_index]}`` for every column, empty ones included."""
    board = {col: [] for col in TASK_COLUMNS}
    for item in items:
        board[column_for(item.status)].append(item)
    for col in board:
        board[col].sort(key=sort_key)
    return board


def move_card(items, moved, target_status: str, over=None) -> list:
    """
    Apply a drop of ``moved`` onto ``over`` (a card) or onto a column.

    ``items`` is every card on the board (any status, ``moved`` included).

    Dropped on a card: ``moved`` takes that card's column, the column is
    re-sorted, ``moved`` is spliced into the target card's index, and the
    whole column is renumbered 0..n-1.

    Dropped on a column: ``moved`` goes to the end of that column.

    Returns the cards whose status or order_index actually changed.
    """
    changed = {}

    if over is not None and over.id != moved.id:
        target_status = over.status

    if moved.status != target_status:
        moved.status = target_status
        changed[moved.id] = moved

    column = sorted(
        (i for i in items if column_for(i.status) == column_for(target_status)),
        key=sort_key,
    )

    if over is not None and over.id != moved.id:
        ids = [i.id for i in column]
        old_index = ids.index(moved.id)
        new_index = ids.index(over.id)
        column.insert(new_index, column.pop(old_index))
        for idx, card in enumerate(column):
            if card.order_index != idx:
                card.order_index = idx
                changed[card.id] = card
    elif over is None:
        end = len([i for i in column if i.id != moved.id])
        if moved.order_index != end:
            moved.order_index = end
            changed[moved.id] = moved

    return list(changed.values())


def move_to_position(items, moved, target_status: str, position: int) -> list:
    """Place ``moved`` at index ``position`` of ``target_status``'s column and renumber it."""
    changed = {}
    if moved.status != target_status:
        moved.status = target_status
        changed[moved.id] = moved

    column = sorted(
        (i for i in items if i.id != moved.id and column_for(i.status) == column_for(target_status)),
        key=sort_key,
    )
    column.insert(max(0, min(position, len(column))), moved)
    for idx, card in enumerate(column):
        if card.order_index != idx:
            card.order_index = idx
            changed[card.id] = card
    return list(changed.values())
