"""Two-level parent/children view over a flat list of todos.

Nothing here touches storage. ``reorder_updates`` turns a (possibly
rearranged) view back into a dense position assignment that
``TodoRepository.reorder`` accepts.
"""
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from models import Todo


def _order_key(todo: Todo):
    return (todo.position, todo.id)


@dataclass
class TodoNode:
    todo: Todo
    children: list[Todo] = field(default_factory=list)

    def to_dict(self):
        data = self.todo.to_dict()
        data["children"] = [child.to_dict() for child in self.children]
        return data


def build_hierarchy(todos: Iterable[Todo]) -> list[TodoNode]:
    live = [t for t in todos if not t.is_deleted]
    by_parent = defaultdict(list)
    for t in live:
        if t.parent_id is not None:
            by_parent[t.parent_id].append(t)

    roots = sorted((t for t in live if t.parent_id is None), key=_order_key)
    return [TodoNode(root, sorted(by_parent.get(root.id, []), key=_order_key)) for root in roots]


def move_node(nodes: list[TodoNode], from_index: int, to_index: int) -> list[TodoNode]:
    """Return a copy of ``nodes`` with one top-level entry dragged to a new slot."""
    if not 0 <= from_index < len(nodes):
        raise IndexError(f"no todo at index {from_index}")
    reordered = list(nodes)
    node = reordered.pop(from_index)
    to_index = max(0, min(to_index, len(reordered)))
    reordered.insert(to_index, node)
    return reordered


def reorder_updates(nodes: list[TodoNode]) -> list[tuple[int, int]]:
    """Dense (id, position) pairs for the top level and every child list, in view order."""
    updates = []
    for index, node in enumerate(nodes, start=1):
        updates.append((node.todo.id, index))
        updates.extend((child.id, child_index) for child_index, child in enumerate(node.children, start=1))
    return updates
