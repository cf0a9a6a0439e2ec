"""
TIN Vault.

AES-256-GCM encryption for taxpayer identification numbers with audited
decryption.
CRITICAL: A TIN is never stored, logged or returned in plaintext except by
TinVault.decrypt, and decrypt never returns plaintext unless the access was
recorded in the audit trail first.

Ciphertext format: base64(nonce || ciphertext+tag). The associated data binds
each ciphertext to this vault, so a value copied from another encrypted
column will not decrypt here.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import secrets
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from audit.entry import AuditEvent
from audit.event_types import AuditEventType
from audit.trail import AuditTrail
from core.exceptions import (
    ConfigurationError,
    DecryptionError,
    SecurityAuditFailure,
    ValidationError,
)
from security.secure_logger import get_logger
from security.tin_validation import (
    TinType,
    mask_tin,
    validate_ein,
    validate_ssn,
    validate_tin,
)

logger = get_logger(__name__)

_NON_DIGITS = re.compile(r"\D")
_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")


class KeyProvider(Protocol):
    """Source of the 256-bit TIN encryption key."""

    def get_key(self) -> bytes:
        ...


class StaticKeyProvider:
    """Key supplied once at startup as 64 hex characters."""

    def __init__(self, hex_key: str):
        if not isinstance(hex_key, str) or not _HEX_KEY.match(hex_key.strip()):
            raise ConfigurationError("TIN encryption key must be exactly 64 hex characters")
        self._key = bytes.fromhex(hex_key.strip())

    def get_key(self) -> bytes:
        return self._key


def key_provider_from_settings(settings) -> StaticKeyProvider:
    """
    Build the key provider from application settings.

    Production requires TIN_ENCRYPTION_KEY. Elsewhere a missing key falls back
    to a random per-process key, so anything encrypted will not survive a
    restart.
    """
    key = settings.tin.encryption_key
    if key:
        return StaticKeyProvider(key)

    if settings.is_production:
        raise ConfigurationError(
            "TIN_ENCRYPTION_KEY is required in production. "
            "Generate with: python -c \"import secrets; print(secrets.token_hex(32))\""
        )

    logger.warning(
        "TIN_ENCRYPTION_KEY not set. Using random key (encrypted TINs will not persist)."
    )
    return StaticKeyProvider(secrets.token_hex(32))


@dataclass(frozen=True)
class AccessContext:
    """Who is decrypting whose TIN, and why."""
    actor_ref: str
    subject_ref: str
    purpose: str
    ip_address: Optional[str] = None


class TinVault:
    """
    Encrypts TINs at rest and gates plaintext behind the audit trail.

    Security Features:
    - Authenticated encryption (tampering detected)
    - Unique random nonce for each encryption
    - Exactly one tin_decrypted audit event per successful decryption
    """

    # Nonce size for GCM (96 bits recommended)
    NONCE_SIZE = 12
    ASSOCIATED_DATA = b"settlement-engine:tin-vault:v1"

    def __init__(self, key_provider: KeyProvider, audit_trail: AuditTrail):
        self._key_provider = key_provider
        self._audit_trail = audit_trail

    def encrypt(self, raw_tin: str, tin_type: Optional[TinType] = None) -> Tuple[str, str]:
        """
        Encrypt a TIN.

        Non-digit characters are stripped before encryption.

        Args:
            raw_tin: SSN or EIN, with or without formatting
            tin_type: If given, the TIN must also pass that type's format rules

        Returns:
            Tuple of (ciphertext, last four digits)

        Raises:
            ValidationError: If the TIN is not 9 digits or fails the type rules
        """
        if not isinstance(raw_tin, str):
            raise ValidationError("TIN must be a string", field="tin")

        digits = _NON_DIGITS.sub("", raw_tin)
        if len(digits) != 9:
            raise ValidationError("TIN must be 9 digits", field="tin")
        if tin_type is not None and not validate_tin(digits, tin_type):
            raise ValidationError(
                f"Invalid {TinType(tin_type).value.upper()} format", field="tin"
            )

        nonce = secrets.token_bytes(self.NONCE_SIZE)
        aesgcm = AESGCM(self._key_provider.get_key())
        sealed = aesgcm.encrypt(nonce, digits.encode("utf-8"), self.ASSOCIATED_DATA)

        return base64.b64encode(nonce + sealed).decode("ascii"), digits[-4:]

    def decrypt(self, ciphertext: str, context: AccessContext) -> str:
        """
        Decrypt a TIN and record the access.

        Order: decrypt, append tin_decrypted audit event, return plaintext.

        Raises:
            ValidationError: If the access context has no purpose
            DecryptionError: If the ciphertext is malformed or was tampered with
            SecurityAuditFailure: If the access could not be audited; the
                plaintext is discarded
        """
        # Fails with ValidationError before touching the key
        event = AuditEvent(
            event_type=AuditEventType.TIN_DECRYPTED,
            actor_ref=context.actor_ref,
            subject_ref=context.subject_ref,
            purpose=context.purpose,
            ip_address=context.ip_address,
            details={"access": "decrypt"},
        )

        plaintext = self._open(ciphertext)

        try:
            self._audit_trail.append(event)
        except Exception as e:
            plaintext = None
            logger.critical(
                "SECURITY: TIN decryption could not be audited; plaintext discarded",
                extra={"actor_ref": context.actor_ref, "subject_ref": context.subject_ref},
            )
            raise SecurityAuditFailure(
                "TIN access could not be recorded; decryption refused"
            ) from e

        return plaintext

    def _open(self, ciphertext: str) -> str:
        try:
            combined = base64.b64decode(ciphertext.encode("ascii"), validate=True)
        except (binascii.Error, ValueError, AttributeError) as e:
            logger.warning("TIN ciphertext is not valid base64")
            raise DecryptionError("Failed to decrypt TIN") from e

        if len(combined) <= self.NONCE_SIZE:
            raise DecryptionError("Failed to decrypt TIN")

        nonce, sealed = combined[:self.NONCE_SIZE], combined[self.NONCE_SIZE:]
        try:
            aesgcm = AESGCM(self._key_provider.get_key())
            return aesgcm.decrypt(nonce, sealed, self.ASSOCIATED_DATA).decode("utf-8")
        except InvalidTag as e:
            logger.warning("TIN decryption failed: authentication tag mismatch")
            raise DecryptionError("Failed to decrypt TIN") from e

    # Format rules, exposed here so callers need only the vault

    @staticmethod
    def validate_ssn(candidate: str) -> bool:
        return validate_ssn(candidate)

    @staticmethod
    def validate_ein(candidate: str) -> bool:
        return validate_ein(candidate)

    @staticmethod
    def mask(last_four: str, tin_type: TinType) -> str:
        return mask_tin(last_four, tin_type)
