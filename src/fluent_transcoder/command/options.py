"""Ordered option lists.

ffmpeg is order sensitive: an option applies to the next input or output
file on the command line. OptionList keeps (flag, arguments) pairs in
insertion order, allows duplicates and renders them back into a flat
argument list.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from fluent_transcoder.executor.errors import BuildError

Option = tuple[str, tuple[str, ...]]


def parse_options(*options) -> list[Option]:
    """Normalize option arguments into (flag, args) pairs.

    Accepted forms:
        parse_options("-crf 23", "-preset fast")  # flag and value in one string
        parse_options("-map", "0:a")              # flag/value pair
        parse_options(["-map", "0:a", "-an"])     # a single list of the above
        parse_options("-an")                      # flag without value

    A string starting with "-" is split on its first space into flag and
    value. Any other string is an extra argument of the option before it.

    Raises:
        BuildError: If the first option does not start with "-".
    """
    if len(options) == 1 and isinstance(options[0], (list, tuple)):
        options = tuple(options[0])

    items = [str(o).strip() for o in options]
    if len(items) == 2 and items[0].startswith("-") and not items[1].startswith("-"):
        if " " not in items[0]:
            return [(items[0], (items[1],))]

    parsed: list[Option] = []
    for item in items:
        if item.startswith("-"):
            flag, _, value = item.partition(" ")
            value = value.strip()
            parsed.append((flag, (value,) if value else ()))
        elif parsed:
            flag, args = parsed[-1]
            parsed[-1] = (flag, (*args, item))
        else:
            raise BuildError(f"Invalid option {item!r}: options must start with '-'")
    return parsed


@dataclass
class OptionList:
    """Insertion-ordered list of (flag, args) pairs."""

    items: list[Option] = field(default_factory=list)

    def add(self, flag: str, *args) -> OptionList:
        """Append one option."""
        self.items.append((flag, tuple(str(a) for a in args)))
        return self

    def extend(self, options: Iterable[Option]) -> OptionList:
        """Append already-parsed options."""
        self.items.extend(options)
        return self

    def find(self, flag: str) -> tuple[str, ...] | None:
        """Get the arguments of the last occurrence of a flag.

        ffmpeg lets the last occurrence of a per-file option win, so that is
        the one reported.
        """
        for item_flag, args in reversed(self.items):
            if item_flag == flag:
                return args
        return None

    def find_first(self, flags: Iterable[str]) -> str | None:
        """Get the first argument of the last occurrence among aliases."""
        wanted = set(flags)
        for item_flag, args in reversed(self.items):
            if item_flag in wanted and args:
                return args[0]
        return None

    def remove(self, flag: str) -> OptionList:
        """Drop every occurrence of a flag."""
        self.items = [item for item in self.items if item[0] != flag]
        return self

    def clear(self) -> OptionList:
        self.items.clear()
        return self

    def copy(self) -> OptionList:
        return OptionList(list(self.items))

    def render(self) -> list[str]:
        """Flatten into argument vector elements."""
        args: list[str] = []
        for flag, values in self.items:
            args.append(flag)
            args.extend(values)
        return args

    def __iter__(self) -> Iterator[Option]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)
