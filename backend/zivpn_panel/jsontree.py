"""Чистые функции для правки JSON-дерева по пути.

Путь - последовательность ключей объектов (str) и индексов массивов (int).
Функции не изменяют исходное значение и возвращают новое дерево.
"""
import copy
from typing import Any, Sequence, Union

PathItem = Union[str, int]


def get_at_path(tree: Any, path: Sequence[PathItem], default: Any = None) -> Any:
    node = tree
    for key in path:
        if isinstance(node, dict) and isinstance(key, str) and key in node:
            node = node[key]
        elif isinstance(node, list) and isinstance(key, int) and -len(node) <= key < len(node):
            node = node[key]
        else:
            return default
    return node


def set_at_path(tree: Any, path: Sequence[PathItem], value: Any) -> Any:
    """Вернуть копию `tree`, где по пути `path` лежит `value`.

    Недостающие промежуточные объекты создаются; значение, которое не
    является объектом, заменяется объектом.
    """
    if not path:
        return copy.deepcopy(value)

    key, rest = path[0], path[1:]
    if isinstance(tree, list):
        if not isinstance(key, int) or not -len(tree) <= key < len(tree):
            raise IndexError(f"Array index out of range: {key!r}")
        result = list(tree)
        result[key] = set_at_path(tree[key], rest, value)
        return result

    result = dict(tree) if isinstance(tree, dict) else {}
    result[str(key)] = set_at_path(result.get(str(key)), rest, value)
    return result

