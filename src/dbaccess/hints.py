"""
Record annotation hints.

Columns are matched to record members by name. These hints rename or hide
members:

    @dataclass
    class Item:
        id: int
        label: Annotated[str, Alias('value')]
        cache: Annotated[dict, Ignore()] = None
        note: str = field(default='', metadata={'alias': 'comment'})

        @alias('updated_on')
        def set_modified(self, value: datetime.date) -> None:
            ...
"""
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

ALIAS_ATTR = '__dbaccess_alias__'
IGNORE_ATTR = '__dbaccess_ignore__'


@dataclass(frozen=True, slots=True)
class Alias:
    """Match this member to the column `name` instead of its own name."""
    name: str


@dataclass(frozen=True, slots=True)
class Ignore:
    """Never map a column onto this member."""


def alias(name: str) -> Callable[[Callable], Callable]:
    """Decorator giving a setter method or property setter a column alias."""
    def decorator(func: Callable) -> Callable:
        setattr(func, ALIAS_ATTR, name)
        return func
    return decorator


def ignore(func: Callable) -> Callable:
    """Decorator hiding a setter method or property from record mapping."""
    setattr(func, IGNORE_ATTR, True)
    return func


def hints_from_metadata(metadata: Any) -> tuple[str | None, bool]:
    """Read (alias, ignored) from `Annotated` extras or dataclass field metadata.
    """
    name, ignored = None, False
    if isinstance(metadata, Mapping):
        name = metadata.get('alias')
        ignored = bool(metadata.get('ignore', False))
        return name, ignored
    for item in metadata:
        if isinstance(item, Alias):
            name = item.name
        elif isinstance(item, Ignore) or item is Ignore:
            ignored = True
    return name, ignored


def hints_from_function(func: Callable | None) -> tuple[str | None, bool]:
    """Read (alias, ignored) set by the `alias` and `ignore` decorators."""
    if func is None:
        return None, False
    return getattr(func, ALIAS_ATTR, None), getattr(func, IGNORE_ATTR, False)
