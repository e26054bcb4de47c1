from __future__ import annotations

import os
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from src.shared.config import Settings
from src.shared.exceptions import CryptoError
from src.shared.logging import get_logger
from src.tenancy.domain.entities.integration_config import FieldCipherFailure, FieldCipherReport

logger = get_logger(__name__)

ENCRYPTED_PREFIX = "encrypted:"

_KDF_SALT = b"tenant-credential-cipher"
_KDF_ITERATIONS = 100_000
_NONCE_BYTES = 12


class CredentialCipher:
    """
    Field-level AES-256-GCM cipher driven by one process-wide secret.

    Output format: "encrypted:" + hex(nonce || ciphertext || tag).
    Values without the marker are treated as plaintext that was never
    encrypted, so legacy rows can be migrated incrementally.

    ENV:
      INTEGRATION_ENCRYPTION_KEY = secret the AES key is derived from (PBKDF2-SHA256)
    """
    ALG = "AES-256-GCM"

    def __init__(self, secret: str) -> None:
        if not secret or not secret.strip():
            raise CryptoError("INTEGRATION_ENCRYPTION_KEY is not configured")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=_KDF_SALT,
            iterations=_KDF_ITERATIONS,
        )
        self._aes = AESGCM(kdf.derive(secret.encode("utf-8")))

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialCipher":
        return cls(settings.integration_encryption_key)

    # ---------- single values ----------

    @staticmethod
    def is_encrypted(value: Any) -> bool:
        return isinstance(value, str) and value.startswith(ENCRYPTED_PREFIX)

    def encrypt(self, plaintext: str) -> str:
        if not isinstance(plaintext, str) or plaintext == "":
            raise CryptoError("Cannot encrypt an empty or non-string value")
        nonce = os.urandom(_NONCE_BYTES)
        ct = self._aes.encrypt(nonce, plaintext.encode("utf-8"), associated_data=None)
        return ENCRYPTED_PREFIX + (nonce + ct).hex()

    def _decrypt_once(self, value: str) -> str:
        try:
            raw = bytes.fromhex(value[len(ENCRYPTED_PREFIX):])
        except ValueError as exc:
            raise CryptoError("Malformed ciphertext (not hex)") from exc
        if len(raw) <= _NONCE_BYTES:
            raise CryptoError("Malformed ciphertext (too short)")
        try:
            pt = self._aes.decrypt(raw[:_NONCE_BYTES], raw[_NONCE_BYTES:], associated_data=None)
        except InvalidTag as exc:
            raise CryptoError("Decryption failed (wrong key or tampered value)") from exc
        try:
            return pt.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CryptoError("Decrypted value is not valid UTF-8") from exc

    def decrypt(self, value: Any) -> Any:
        """
        Unprefixed values are returned unchanged. A prefixed value is decrypted
        once; if the result still carries the marker (legacy double encryption)
        exactly one more pass is made.
        """
        if not self.is_encrypted(value):
            return value
        plaintext = self._decrypt_once(value)
        if self.is_encrypted(plaintext):
            logger.warning("Double-encrypted value detected, applying one extra decrypt pass")
            plaintext = self._decrypt_once(plaintext)
        return plaintext

    def is_double_encrypted(self, value: Any) -> bool:
        if not self.is_encrypted(value):
            return False
        try:
            return self.is_encrypted(self._decrypt_once(value))
        except CryptoError:
            return False

    def _is_own_ciphertext(self, value: Any) -> bool:
        if not self.is_encrypted(value):
            return False
        try:
            self._decrypt_once(value)
        except CryptoError:
            return False
        return True

    # ---------- per-field (best effort) ----------

    def encrypt_fields(
        self, data: Mapping[str, Any], fields: Iterable[str]
    ) -> Tuple[Dict[str, Any], FieldCipherReport]:
        """
        Encrypt the named string fields of `data` into a new dict.
        Missing, empty, non-string fields and values that already decrypt under
        this key are left alone.

        The marker is reserved: a plaintext secret that merely starts with
        "encrypted:" is encrypted like any other value, so it is never stored in
        clear, but on read it looks double-encrypted and is reported as a
        decrypt failure.
        """
        out = dict(data)
        succeeded: List[str] = []
        failed: List[FieldCipherFailure] = []
        for name in fields:
            value = out.get(name)
            if not value or not isinstance(value, str) or self._is_own_ciphertext(value):
                continue
            try:
                out[name] = self.encrypt(value)
                succeeded.append(name)
            except Exception as exc:
                logger.warning("Failed to encrypt field", field=name, error=str(exc))
                failed.append(FieldCipherFailure(field=name, reason=str(exc)))
        return out, FieldCipherReport(succeeded=tuple(succeeded), failed=tuple(failed))

    def decrypt_fields(
        self, data: Mapping[str, Any], fields: Iterable[str]
    ) -> Tuple[Dict[str, Any], FieldCipherReport]:
        """Decrypt the named marker-carrying fields of `data` into a new dict."""
        out = dict(data)
        succeeded: List[str] = []
        failed: List[FieldCipherFailure] = []
        for name in fields:
            value = out.get(name)
            if not self.is_encrypted(value):
                continue
            try:
                out[name] = self.decrypt(value)
                succeeded.append(name)
            except Exception as exc:
                logger.warning("Failed to decrypt field", field=name, error=str(exc))
                failed.append(FieldCipherFailure(field=name, reason=str(exc)))
        return out, FieldCipherReport(succeeded=tuple(succeeded), failed=tuple(failed))
