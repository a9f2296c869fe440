"""CSV export of audit log entries for reporting tools."""

import csv
import io
from typing import Callable, Dict, Iterable, Optional, TextIO

from stateflow.core.definitions import DefinitionStore
from stateflow.core.errors import NotFoundError
from .store import AuditLogEntry

CSV_HEADER = [
    "id",
    "created_at",
    "machine_name",
    "entity_type",
    "entity_id",
    "from_state_name",
    "to_state_name",
    "principal_name",
    "comment",
]

# Rendered in place of a from-state for an entity's first transition
INITIAL_FROM_STATE = "initial"

PrincipalNameResolver = Callable[[str], Optional[str]]


class _NameCache:
    """Memoized display names; unknown ids render as the raw id."""

    def __init__(self, definitions: DefinitionStore):
        self._definitions = definitions
        self._machines: Dict[int, str] = {}
        self._states: Dict[int, str] = {}

    def machine(self, machine_id: int) -> str:
        if machine_id not in self._machines:
            try:
                self._machines[machine_id] = self._definitions.get_machine(machine_id).display_name
            except NotFoundError:
                self._machines[machine_id] = str(machine_id)
        return self._machines[machine_id]

    def state(self, state_id: Optional[int]) -> str:
        if state_id is None:
            return INITIAL_FROM_STATE
        if state_id not in self._states:
            try:
                self._states[state_id] = self._definitions.get_state(state_id).display_name
            except NotFoundError:
                self._states[state_id] = str(state_id)
        return self._states[state_id]


def write_csv(
    entries: Iterable[AuditLogEntry],
    definitions: DefinitionStore,
    stream: TextIO,
    principal_name: Optional[PrincipalNameResolver] = None,
) -> int:
    """Write entries as CSV rows to ``stream``.

    Args:
        entries: Entries in the order they should appear
        definitions: Store used to resolve machine and state names
        stream: Text stream to write to
        principal_name: Optional resolver from principal id to display name

    Returns:
        Number of data rows written
    """
    names = _NameCache(definitions)
    writer = csv.writer(stream)
    writer.writerow(CSV_HEADER)

    count = 0
    for entry in entries:
        resolved = principal_name(entry.principal_id) if principal_name else None
        writer.writerow([
            entry.id,
            entry.created_at.isoformat() if entry.created_at else "",
            names.machine(entry.machine_id),
            entry.entity_type,
            entry.entity_id,
            names.state(entry.from_state_id),
            names.state(entry.to_state_id),
            resolved or entry.principal_id,
            entry.comment or "",
        ])
        count += 1
    return count


def export_csv(
    entries: Iterable[AuditLogEntry],
    definitions: DefinitionStore,
    principal_name: Optional[PrincipalNameResolver] = None,
) -> str:
    """Render entries as a CSV document."""
    output = io.StringIO()
    write_csv(entries, definitions, output, principal_name)
    return output.getvalue()
