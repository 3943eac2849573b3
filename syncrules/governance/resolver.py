"""Inheritance resolution — the aggregate mode of a project's folders.

The mode is a projection over folder sync states and is recomputed on every
read; it is never written back to the project.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from syncrules.governance.models import Folder, InheritanceMode, SyncStatus


@dataclass(frozen=True)
class InheritanceResolution:
    """Aggregate inheritance state of one project."""

    mode: InheritanceMode
    synced_count: int = 0
    detached_count: int = 0

    @property
    def inherited_count(self) -> int:
        return self.synced_count + self.detached_count

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "synced_count": self.synced_count,
            "detached_count": self.detached_count,
        }


def resolve_mode(folders: Iterable[Folder]) -> InheritanceResolution:
    """Classify a project's folders as ``full``, ``partial`` or ``none``.

    Account-level folders are ignored. Only folders with an account lineage
    (``inherited_from`` set) count towards the synced/detached totals.
    """
    synced = 0
    detached = 0
    for folder in folders:
        if folder.is_account_level or not folder.is_inherited:
            continue
        if folder.sync_status == SyncStatus.synced:
            synced += 1
        elif folder.sync_status == SyncStatus.detached:
            detached += 1

    if synced + detached == 0:
        mode = InheritanceMode.none
    elif detached == 0:
        mode = InheritanceMode.full
    else:
        mode = InheritanceMode.partial

    return InheritanceResolution(mode=mode, synced_count=synced, detached_count=detached)
