"""Reconciliation reporter: confirmed / missing / unexpected projections
of an audit session.

``reconcile`` is a pure function over a session and a registry snapshot.
It never writes to the database.
"""

from dataclasses import dataclass, field

from django.conf import settings
from django.db.models import Q

from ..models import AuditSession, Equipment
from .audits import get_audit_session


@dataclass(frozen=True)
class Reconciliation:
    """Read-only audit reconciliation."""

    session_id: int
    department_id: int
    status: str
    expected: tuple
    confirmed: tuple
    missing: tuple
    unexpected: tuple = field(default_factory=tuple)

    @property
    def expected_count(self) -> int:
        return len(self.expected)

    @property
    def confirmed_count(self) -> int:
        return len(self.confirmed)

    @property
    def missing_count(self) -> int:
        return len(self.missing)

    @property
    def unexpected_count(self) -> int:
        return len(self.unexpected)

    @property
    def progress(self) -> int:
        """Percentage of expected equipment confirmed."""
        if not self.expected:
            return 100 if self.status == "completed" else 0
        return round(100 * self.confirmed_count / self.expected_count)

    def as_dict(self):
        return {
            "session_id": self.session_id,
            "department_id": self.department_id,
            "status": self.status,
            "expected": list(self.expected),
            "confirmed": list(self.confirmed),
            "missing": list(self.missing),
            "unexpected": [dict(item) for item in self.unexpected],
            "counts": {
                "expected": self.expected_count,
                "confirmed": self.confirmed_count,
                "missing": self.missing_count,
                "unexpected": self.unexpected_count,
            },
            "progress": self.progress,
        }


def _expected_ids(session: AuditSession, registry) -> list:
    if session.status == "completed":
        return list(session.expected_item_ids)
    return [
        item.pk
        for item in registry
        if item.department_id == session.department_id
    ]


def reconcile(session: AuditSession, registry) -> Reconciliation:
    """Compare a session's scans against the expected equipment.

    ``registry`` is an iterable of Equipment. A completed session has
    full coverage by definition: everything it expected is confirmed and
    nothing is missing, whatever the registry looks like now.
    """
    expected = sorted(_expected_ids(session, registry))
    if session.status == "completed":
        confirmed = list(expected)
        missing = []
    else:
        scanned = set(session.scanned_item_ids)
        confirmed = [pk for pk in expected if pk in scanned]
        missing = [pk for pk in expected if pk not in scanned]

    return Reconciliation(
        session_id=session.pk,
        department_id=session.department_id,
        status=session.status,
        expected=tuple(expected),
        confirmed=tuple(confirmed),
        missing=tuple(missing),
        unexpected=tuple(dict(item) for item in session.unexpected_items),
    )


def recent_scans(session: AuditSession, registry, limit=None) -> list:
    """Most recently scanned equipment, newest first.

    Ids with no match in ``registry`` are skipped.
    """
    if limit is None:
        limit = settings.AUDIT_RECENT_SCAN_COUNT
    if limit <= 0:
        return []
    by_id = {item.pk: item for item in registry}
    recent = []
    for pk in reversed(session.scanned_item_ids):
        item = by_id.get(pk)
        if item is not None:
            recent.append(item)
        if len(recent) >= limit:
            break
    return recent


def registry_snapshot(session: AuditSession):
    """Equipment relevant to a session: the department's current items
    plus anything the session has scanned or frozen as expected."""
    ids = set(session.scanned_item_ids) | set(session.expected_item_ids)
    return list(
        Equipment.objects.filter(
            Q(department_id=session.department_id) | Q(pk__in=ids)
        ).order_by("pk")
    )


def get_session_reconciliation(session_id) -> Reconciliation:
    """Load a session and reconcile it against the current registry."""
    session = get_audit_session(session_id)
    return reconcile(session, registry_snapshot(session))
