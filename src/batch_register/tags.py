"""Parser for delimited key=value tag strings carried by input records."""

from __future__ import annotations

from dataclasses import dataclass, field


class InvalidInputError(ValueError):
    """Malformed input record; rejects one record, never the whole run."""


class InvalidTagStringError(InvalidInputError):
    """Tag string could not be parsed under the strict policy."""

    def __init__(self, raw: str, problems: list[str]) -> None:
        super().__init__(f"Invalid tag string {raw!r}: {'; '.join(problems)}")
        self.raw = raw
        self.problems = problems


@dataclass(slots=True)
class TagParseResult:
    """Parsed tags plus any problems skipped under the lenient policy."""

    tags: dict[str, str] = field(default_factory=dict)
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def parse_tags(
    raw: str | None,
    *,
    policy: str = "strict",
    entry_delimiter: str = ";",
    pair_delimiter: str = "=",
) -> TagParseResult:
    """Parse ``key=value;key=value`` into an ordered dict.

    Entries are split on ``entry_delimiter`` and each entry on the first
    ``pair_delimiter``. Empty entries (for example a trailing ``;``) are
    ignored. Missing separators, empty keys, empty values and duplicate keys
    are problems: ``strict`` raises ``InvalidTagStringError`` listing all of
    them, ``lenient`` keeps the well-formed entries and reports the rest.
    """

    if policy not in {"strict", "lenient"}:
        raise ValueError(f"Unsupported tag policy: {policy!r}")

    result = TagParseResult()
    if raw is None or not raw.strip():
        return result

    for position, entry in enumerate(raw.split(entry_delimiter), start=1):
        token = entry.strip()
        if not token:
            continue
        if pair_delimiter not in token:
            result.problems.append(f"entry {position} {token!r} has no {pair_delimiter!r}")
            continue
        key, value = token.split(pair_delimiter, 1)
        key = key.strip()
        value = value.strip()
        if not key:
            result.problems.append(f"entry {position} {token!r} has an empty key")
            continue
        if not value:
            result.problems.append(f"entry {position} {token!r} has an empty value")
            continue
        if key in result.tags:
            result.problems.append(f"entry {position} repeats key {key!r}")
            continue
        result.tags[key] = value

    if result.problems and policy == "strict":
        raise InvalidTagStringError(raw, result.problems)
    return result
