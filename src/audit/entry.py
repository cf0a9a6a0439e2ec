"""
Audit Event Data Model

An AuditEvent is immutable once built. Details are passed through the PII
sanitizer on construction, so a raw TIN can never be stored in a payload.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
import uuid

from audit.event_types import AuditEventType, PURPOSE_REQUIRED
from core.exceptions import ValidationError
from core.money import utcnow
from security.data_sanitizer import redact_details


@dataclass(frozen=True)
class AuditEvent:
    """
    Represents a single audit log entry.

    actor_ref is who acted (reviewer, system, payee); subject_ref is whose
    data or money the event concerns.
    """
    event_type: AuditEventType
    actor_ref: str
    subject_ref: str
    purpose: Optional[str] = None
    ip_address: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        object.__setattr__(self, "event_type", AuditEventType(self.event_type))
        if not self.actor_ref:
            raise ValidationError("Audit event requires an actor", field="actor_ref")
        if not self.subject_ref:
            raise ValidationError("Audit event requires a subject", field="subject_ref")
        if self.event_type in PURPOSE_REQUIRED and not (self.purpose or "").strip():
            raise ValidationError(
                f"{self.event_type.value} events require a purpose", field="purpose"
            )
        object.__setattr__(self, "details", redact_details(dict(self.details or {})))

    def to_dict(self) -> dict:
        """Convert audit event to dictionary for serialization."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "actor_ref": self.actor_ref,
            "subject_ref": self.subject_ref,
            "purpose": self.purpose,
            "ip_address": self.ip_address,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditEvent":
        """Create audit event from dictionary."""
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            event_type=AuditEventType(data["event_type"]),
            actor_ref=data["actor_ref"],
            subject_ref=data["subject_ref"],
            purpose=data.get("purpose"),
            ip_address=data.get("ip_address"),
            details=data.get("details") or {},
            event_id=data.get("event_id") or str(uuid.uuid4()),
            timestamp=timestamp or utcnow(),
        )
