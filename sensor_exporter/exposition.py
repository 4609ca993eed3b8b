"""
Exposition store: latest fragment per instance plus metric metadata.

Scheduling tasks replace fragments, the HTTP server reads snapshots.
Neither ever waits for a scrape in progress.
"""

import threading
from collections.abc import Iterable

from .incidents import IncidentCounter


def metric_name(line: str) -> str:
    """Metric name of a "# TYPE name ..." or "# HELP name ..." line."""
    parts = line.split(None, 3)
    if len(parts) < 3 or parts[0] != "#" or parts[1] not in ("TYPE", "HELP"):
        raise ValueError(f"Not a metadata line: {line!r}")
    return parts[2]


class ExpositionStore:
    """
    Thread-safe holder of the exposition document parts.

    Metadata is kept per metric family so that each HELP and TYPE line
    appears once, however many instances report the family. Fragments
    are kept in registration order and replaced as a whole.
    """

    def __init__(self, incidents: IncidentCounter | None = None):
        self.incidents = incidents
        self._families: dict[str, dict[str, str]] = {}
        self._fragments: dict[str, str] = {}
        self._lock = threading.Lock()

    def add_metadata(self, type_lines: Iterable[str], help_lines: Iterable[str]) -> None:
        """
        Add TYPE and HELP lines of a sensor type.

        The first line seen for a family and kind wins; adding the same
        sensor type again has no effect.
        """
        with self._lock:
            for kind, lines in (("HELP", help_lines), ("TYPE", type_lines)):
                for line in lines:
                    family = self._families.setdefault(metric_name(line), {})
                    family.setdefault(kind, line)

    def register(self, identity: str) -> bool:
        """
        Reserve an empty fragment slot.

        Returns:
            False if the identity already had a slot
        """
        with self._lock:
            if identity in self._fragments:
                return False
            self._fragments[identity] = ""
            return True

    def update(self, identity: str, text: str) -> None:
        """Replace the fragment of an instance."""
        with self._lock:
            self._fragments[identity] = text

    def remove(self, identity: str) -> None:
        with self._lock:
            self._fragments.pop(identity, None)

    def fragment(self, identity: str) -> str | None:
        with self._lock:
            return self._fragments.get(identity)

    @property
    def identities(self) -> list[str]:
        with self._lock:
            return list(self._fragments)

    def preamble(self) -> str:
        """HELP and TYPE lines of every known metric family."""
        with self._lock:
            families = [dict(family) for family in self._families.values()]

        lines = []
        for family in families:
            for kind in ("HELP", "TYPE"):
                if kind in family:
                    lines.append(family[kind])
        return "".join(line + "\n" for line in lines)

    def snapshot(self) -> str:
        """Assemble the full exposition document."""
        with self._lock:
            fragments = list(self._fragments.values())

        parts = [self.preamble()]
        if self.incidents is not None:
            parts.append(self.incidents.exposition())
        parts.extend(fragments)
        return "".join(parts)

    def __repr__(self) -> str:
        return f"ExpositionStore({len(self._families)} families, {len(self._fragments)} instances)"
