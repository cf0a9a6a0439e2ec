"""
Audit Trail Module.

Append-only record of every TIN decryption, tax form decision and payout
state change.

    from audit import AuditEvent, AuditEventType

    trail.append(AuditEvent(
        event_type=AuditEventType.TAX_INFO_VERIFIED,
        actor_ref="reviewer-7",
        subject_ref="payee-42",
    ))

Storage backends live in audit.storage and the AuditTrail in audit.trail.
"""

from audit.event_types import AuditEventType, PURPOSE_REQUIRED
from audit.entry import AuditEvent

__all__ = [
    "AuditEventType",
    "PURPOSE_REQUIRED",
    "AuditEvent",
]
