"""Staff names seen in the transaction exports."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Mapping

import structlog

from migration.rows import ItemRow, TransactionRow, clean_text

logger = structlog.get_logger()


@dataclass(frozen=True)
class EmployeeSighting:
    name: str
    record_count: int


def extract_employees(
    items: Iterable[ItemRow | Mapping[str, str]],
    headers: Iterable[TransactionRow | Mapping[str, str]] = (),
) -> list[EmployeeSighting]:
    counts: Counter[str] = Counter()
    for item in items:
        typed = item if isinstance(item, ItemRow) else ItemRow.from_raw(item)
        name = clean_text(typed.employee)
        if name:
            counts[name] += 1
    for header in headers:
        typed_header = header if isinstance(header, TransactionRow) else TransactionRow.from_raw(header)
        name = clean_text(typed_header.staff_name)
        if name:
            counts[name] += 1

    sightings = [
        EmployeeSighting(name=name, record_count=count)
        for name, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]
    logger.info("migration.employees.extracted", employees=len(sightings))
    return sightings
