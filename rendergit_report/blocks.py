from __future__ import annotations

import dataclasses
from typing import List, Optional, Sequence, Tuple, Union

from rendergit_report.plan import BUNDLE, DROP, PICK, SQUASH, PlanRecord


@dataclasses.dataclass(frozen=True)
class Single:
    record: PlanRecord


@dataclasses.dataclass(frozen=True)
class Dropped:
    record: PlanRecord


@dataclasses.dataclass(frozen=True)
class SquashRun:
    records: Tuple[PlanRecord, ...]

    @property
    def first(self) -> PlanRecord:
        return self.records[0]

    @property
    def last(self) -> PlanRecord:
        return self.records[-1]


@dataclasses.dataclass(frozen=True)
class BundleRun:
    # label in force where the run starts; members keep their own `section`
    label: str
    records: Tuple[PlanRecord, ...]


Block = Union[Single, Dropped, SquashRun, BundleRun]


def compile_blocks(records: Sequence[PlanRecord]) -> List[Block]:
    """
    Group maximal contiguous squash / bundle runs into one block each.

    pick and drop records are never grouped.
    """
    blocks: List[Block] = []
    run_action: Optional[str] = None
    run: List[PlanRecord] = []

    def flush() -> None:
        nonlocal run_action
        if run_action == SQUASH:
            blocks.append(SquashRun(records=tuple(run)))
        elif run_action == BUNDLE:
            blocks.append(BundleRun(label=run[0].section, records=tuple(run)))
        run.clear()
        run_action = None

    for record in records:
        if record.action in (SQUASH, BUNDLE):
            if record.action != run_action:
                flush()
                run_action = record.action
            run.append(record)
            continue

        flush()
        if record.action == PICK:
            blocks.append(Single(record))
        elif record.action == DROP:
            blocks.append(Dropped(record))
        else:
            raise ValueError(f"unknown plan action: {record.action}")
    flush()
    return blocks


def block_records(blocks: Sequence[Block]) -> List[PlanRecord]:
    """Flatten blocks back into their records, in order."""
    out: List[PlanRecord] = []
    for block in blocks:
        if isinstance(block, (Single, Dropped)):
            out.append(block.record)
        else:
            out.extend(block.records)
    return out
