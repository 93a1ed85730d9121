from __future__ import annotations

import base64
import binascii
import os
from collections.abc import Mapping
from dataclasses import dataclass

ENCRYPTION_KEY_ENV = "ENCRYPTION_KEY"
ENCRYPTION_IV_ENV = "ENCRYPTION_IV"
ENCRYPTION_STRICT_ENV = "ENCRYPTION_STRICT_DECRYPT"

AES_KEY_BYTES = 32
AES_IV_BYTES = 16

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class KeyMaterialError(RuntimeError):
    pass


@dataclass(frozen=True, repr=False)
class KeyMaterial:
    """Fixed AES key and IV shared by every encrypted column.

    The IV is constant so equal plaintexts encrypt to equal
    ciphertexts and can be looked up by equality. Rotating either value
    invalidates every stored ciphertext and requires an offline re-encryption
    of all rows.
    """

    key: bytes
    iv: bytes

    def __post_init__(self) -> None:
        if len(self.key) != AES_KEY_BYTES:
            raise KeyMaterialError(f"encryption key must be {AES_KEY_BYTES} bytes, got {len(self.key)}")
        if len(self.iv) != AES_IV_BYTES:
            raise KeyMaterialError(f"encryption iv must be {AES_IV_BYTES} bytes, got {len(self.iv)}")

    def __repr__(self) -> str:
        return "KeyMaterial(key=<redacted>, iv=<redacted>)"


def _decode_base64_setting(name: str, value: str | None) -> bytes:
    if value is None or not value.strip():
        raise KeyMaterialError(f"{name} is not configured")
    try:
        return base64.b64decode(value.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise KeyMaterialError(f"{name} is not valid base64") from exc


def load_key_material(environ: Mapping[str, str] | None = None) -> KeyMaterial:
    env = os.environ if environ is None else environ
    return KeyMaterial(
        key=_decode_base64_setting(ENCRYPTION_KEY_ENV, env.get(ENCRYPTION_KEY_ENV)),
        iv=_decode_base64_setting(ENCRYPTION_IV_ENV, env.get(ENCRYPTION_IV_ENV)),
    )


def strict_decrypt_enabled(environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get(ENCRYPTION_STRICT_ENV, "false").strip().lower() in {"1", "true", "yes", "on"}
