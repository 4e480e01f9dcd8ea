from __future__ import annotations

import typing as t

from keygen_admin.errors import SelectionError

T = t.TypeVar("T")


def ask(prompt: str) -> str:
    return input(prompt).strip()


def ask_required(prompt: str, what: str) -> str:
    value = ask(prompt)
    if not value:
        raise SelectionError(f"{what} cannot be empty")
    return value


def _parse_index(raw: str, count: int) -> int:
    try:
        n = int(raw)
    except ValueError:
        raise SelectionError(f"invalid selection: {raw}") from None
    if not 1 <= n <= count:
        raise SelectionError(f"invalid selection: {raw}")
    return n - 1


def show_numbered(items: t.Sequence[T], render: t.Callable[[T], str]) -> None:
    for i, item in enumerate(items, 1):
        print(f"{i}. {render(item)}")
        print()


def choose_one(
    items: t.Sequence[T],
    render: t.Callable[[T], str],
    noun: str,
    auto_single: bool = True,
) -> T:
    """Print a numbered list and return the operator's pick; a single item is picked automatically."""
    if not items:
        raise SelectionError(f"no {noun}s to choose from")
    show_numbered(items, render)
    if auto_single and len(items) == 1:
        print(f"[info] using the only available {noun}")
        return items[0]
    raw = ask(f"Select {noun} number (1-{len(items)}): ")
    return items[_parse_index(raw, len(items))]


def choose_many(items: t.Sequence[T], render: t.Callable[[T], str], noun: str) -> list[T]:
    """Space-separated numbers; `0` or an empty answer selects nothing."""
    show_numbered(items, render)
    raw = ask(f"Enter {noun} numbers (space-separated) or 0 for none: ")
    tokens = raw.split()
    if not tokens or tokens[0] == "0":
        return []
    return [items[_parse_index(tok, len(items))] for tok in tokens]


def collect_metadata() -> dict[str, str]:
    """Read key/value pairs until an empty key. Empty values are skipped."""
    metadata: dict[str, str] = {}
    while True:
        key = ask("Enter metadata key (or press Enter to finish): ")
        if not key:
            break
        value = ask(f"Enter value for '{key}': ")
        if not value:
            print("[warning] empty value, skipping this metadata")
            continue
        metadata[key] = value
        print(f"[info] added: {key} = {value}")
    if not metadata:
        print("[info] no metadata added")
    return metadata
