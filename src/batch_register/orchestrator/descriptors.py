"""Build task descriptors from input records."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from batch_register.orchestrator.models import TaskDescriptor
from batch_register.records import InputRecord
from batch_register.tags import InvalidTagStringError, parse_tags

logger = logging.getLogger(__name__)


def build_descriptors(  # noqa: PLR0913
    records: Iterable[InputRecord],
    *,
    identity_column: str = "SystemId",
    tags_column: str = "Tags",
    tag_policy: str = "strict",
    entry_delimiter: str = ";",
    pair_delimiter: str = "=",
) -> list[TaskDescriptor]:
    """Derive one descriptor per record, in input order, with unique task ids.

    Invalid records still get a descriptor so they appear in the report; the
    ``rejection`` field tells the runner not to submit them.
    """

    descriptors: list[TaskDescriptor] = []
    seen: set[str] = set()
    seen_identities: set[str] = set()
    for record in records:
        identity = record.fields.get(identity_column, "").strip()
        rejection: str | None = None
        task_id = identity
        if not identity:
            task_id = f"row-{record.row_number}"
            rejection = f"missing {identity_column} value"
        elif identity in seen_identities:
            task_id = f"{identity}#row-{record.row_number}"
            rejection = f"duplicate {identity_column} {identity!r}"
        else:
            seen_identities.add(identity)
        task_id = _unique_id(task_id, seen)
        seen.add(task_id)

        tags: dict[str, str] = {}
        try:
            parsed = parse_tags(
                record.fields.get(tags_column),
                policy=tag_policy,
                entry_delimiter=entry_delimiter,
                pair_delimiter=pair_delimiter,
            )
        except InvalidTagStringError as error:
            rejection = rejection or str(error)
        else:
            tags = parsed.tags
            for problem in parsed.problems:
                logger.warning("Row %d tag %s; entry skipped", record.row_number, problem)

        parameters: dict[str, object] = {
            name: value for name, value in record.fields.items() if name != tags_column
        }
        parameters["tags"] = tags
        descriptors.append(
            TaskDescriptor(
                task_id=task_id,
                row_number=record.row_number,
                parameters=parameters,
                source_fields=dict(record.fields),
                rejection=rejection,
            ),
        )
    return descriptors


def _unique_id(candidate: str, seen: set[str]) -> str:
    task_id = candidate
    suffix = 1
    while task_id in seen:
        suffix += 1
        task_id = f"{candidate}~{suffix}"
    return task_id
