"""
Compliance Domain Models

Tax form submissions, the public tax record view, and the tax form state
machine:

- PENDING: Submitted, awaiting reviewer decision
- VERIFIED: Reviewer accepted the form; payouts above the threshold may proceed
- INVALID: Reviewer rejected the form; payee must submit a new one
- EXPIRED: Verified form passed its validity window

The public TaxRecord never carries the encrypted TIN. Decryption is only
available through the audited vault path.
"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from security.tin_validation import TinType, mask_tin


class TaxFormType(str, Enum):
    """IRS form used to collect the payee's tax information."""
    W9 = "w9"
    W8BEN = "w8ben"
    W8BENE = "w8bene"


class TaxClassification(str, Enum):
    """Federal tax classification from line 3 of Form W-9."""
    INDIVIDUAL = "individual"
    SOLE_PROPRIETOR = "sole_proprietor"
    C_CORP = "c_corp"
    S_CORP = "s_corp"
    PARTNERSHIP = "partnership"
    TRUST_ESTATE = "trust_estate"
    LLC_C = "llc_c"
    LLC_S = "llc_s"
    LLC_P = "llc_p"
    NONPROFIT = "nonprofit"
    OTHER = "other"


class TaxInfoStatus(str, Enum):
    """Status of a single tax record."""
    PENDING = "pending"
    VERIFIED = "verified"
    INVALID = "invalid"
    EXPIRED = "expired"


class ComplianceStatus(str, Enum):
    """A payee's compliance status: their current record's status, or NOT_SUBMITTED."""
    NOT_SUBMITTED = "not_submitted"
    PENDING = "pending"
    VERIFIED = "verified"
    INVALID = "invalid"
    EXPIRED = "expired"

    @classmethod
    def from_record_status(cls, status: TaxInfoStatus) -> "ComplianceStatus":
        return cls(TaxInfoStatus(status).value)


class ReviewDecision(str, Enum):
    """Outcome a reviewer may record for a pending tax form."""
    VERIFIED = "verified"
    INVALID = "invalid"

    @property
    def target_status(self) -> TaxInfoStatus:
        return TaxInfoStatus(self.value)


# Valid status transitions. VERIFIED and INVALID decisions are final; only a
# new submission changes the payee's current status.
VALID_TRANSITIONS: Dict[TaxInfoStatus, List[TaxInfoStatus]] = {
    TaxInfoStatus.PENDING: [TaxInfoStatus.VERIFIED, TaxInfoStatus.INVALID],
    TaxInfoStatus.VERIFIED: [TaxInfoStatus.EXPIRED],
    TaxInfoStatus.INVALID: [],
    TaxInfoStatus.EXPIRED: [],
}


def can_transition(current: TaxInfoStatus, target: TaxInfoStatus) -> bool:
    """Check whether a tax record may move from current to target."""
    return target in VALID_TRANSITIONS.get(current, [])


class Address(BaseModel):
    """Mailing address reported on the tax form."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True, frozen=True)

    line1: str = Field(..., min_length=1, max_length=255)
    line2: Optional[str] = Field(default=None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=50)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(default="USA", min_length=1, max_length=50)


class TaxFormSubmission(BaseModel):
    """
    Inbound tax form payload.

    The raw TIN is held as a SecretStr so it never shows up in reprs, logs or
    validation error messages. exempt_payee_code is stored as given.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    owner_ref: str = Field(..., min_length=1, max_length=100)
    form_type: TaxFormType = TaxFormType.W9
    legal_name: str = Field(..., min_length=1, max_length=255)
    business_name: Optional[str] = Field(default=None, max_length=255)
    tax_classification: TaxClassification
    tin: SecretStr
    tin_type: TinType
    address: Address
    is_us_person: Optional[bool] = None
    is_exempt_payee: bool = False
    exempt_payee_code: Optional[str] = Field(default=None, max_length=10)
    signature_name: str = Field(..., min_length=1, max_length=255)
    signature_date: date
    signature_ip: Optional[str] = Field(default=None, max_length=45)

    @field_validator("business_name", "exempt_payee_code", "signature_ip")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class TaxRecord(BaseModel):
    """Read-only view of a stored tax record, without ciphertext."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    record_id: str
    owner_ref: str
    form_type: TaxFormType
    legal_name: str
    business_name: Optional[str] = None
    tax_classification: TaxClassification
    tin_type: TinType
    tin_last_four: str = Field(..., pattern=r"^\d{4}$")
    address: Address
    is_us_person: Optional[bool] = None
    is_exempt_payee: bool = False
    exempt_payee_code: Optional[str] = None
    signature_name: str
    signature_date: date
    signature_ip: Optional[str] = None
    status: TaxInfoStatus
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    review_notes: Optional[str] = None
    created_at: datetime
    expires_at: Optional[datetime] = None

    @property
    def masked_tin(self) -> str:
        return mask_tin(self.tin_last_four, self.tin_type)
