"""Deterministic field encryption for identifiers stored at rest.

AES-256-CBC with PKCS7 padding under a single fixed key and IV, base64
encoded. Determinism is what lets ``UNIQUE`` constraints and equality lookups
work on the ciphertext column; the price is that equal plaintexts are
recognisable to anyone holding the ciphertexts.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
from functools import lru_cache

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from imei_registry.infra.config import KeyMaterial, load_key_material, strict_decrypt_enabled

logger = logging.getLogger(__name__)

BLOCK_SIZE_BITS = 128
BLOCK_SIZE_BYTES = BLOCK_SIZE_BITS // 8


class CipherIntegrityError(ValueError):
    pass


class CipherCodec:
    def __init__(self, key_material: KeyMaterial, *, strict: bool = False) -> None:
        self._key_material = key_material
        self._strict = strict

    @property
    def strict(self) -> bool:
        return self._strict

    def _cipher(self) -> Cipher[modes.CBC]:
        return Cipher(algorithms.AES(self._key_material.key), modes.CBC(self._key_material.iv))

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return plaintext
        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = self._cipher().encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(ciphertext).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt ``ciphertext``, passing through values that are not ciphertext.

        Rows written before encryption was introduced share the column with
        encrypted rows, so anything that fails to decode, align or unpad is
        returned as-is. A plaintext that happens to be valid ciphertext is
        indistinguishable from an encrypted value. With ``strict`` enabled the
        failure raises ``CipherIntegrityError`` instead.
        """
        if not ciphertext:
            return ciphertext
        try:
            return self._decrypt_value(ciphertext)
        except ValueError as exc:
            if self._strict:
                raise CipherIntegrityError("stored value is not valid ciphertext") from exc
            return ciphertext

    def _decrypt_value(self, ciphertext: str) -> str:
        try:
            raw = base64.b64decode(ciphertext, validate=True)
        except binascii.Error as exc:
            raise ValueError("not base64") from exc
        if not raw or len(raw) % BLOCK_SIZE_BYTES:
            raise ValueError("not block aligned")
        decryptor = self._cipher().decryptor()
        padded = decryptor.update(raw) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")

    def fingerprint(self, plaintext: str) -> str:
        if not plaintext:
            return ""
        digest = hashlib.sha256(plaintext.encode("utf-8")).digest()
        return base64.b64encode(digest).decode("ascii")


@lru_cache(maxsize=1)
def get_cipher_codec() -> CipherCodec:
    codec = CipherCodec(load_key_material(), strict=strict_decrypt_enabled())
    logger.info("cipher codec initialized (strict_decrypt=%s)", codec.strict)
    return codec
