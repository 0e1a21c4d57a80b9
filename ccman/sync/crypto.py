"""API Key 加密

云端传输使用 PBKDF2-SHA256 + AES-256-GCM，信封格式为
base64(salt || iv || authTag || ciphertext)。
"""

import base64
import binascii
import logging
import os
from typing import TYPE_CHECKING, List, Sequence

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..errors import DecryptionFailed

if TYPE_CHECKING:
    from ..config import ProviderRecord

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16
SALT_LENGTH = 32
TAG_LENGTH = 16
PBKDF2_ITERATIONS = 100000

_HEADER_LENGTH = SALT_LENGTH + IV_LENGTH + TAG_LENGTH


def _derive_key(password: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt(plaintext: str, password: str) -> str:
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = _derive_key(password, salt)

    # AESGCM 输出 ciphertext || tag
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

    return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")


def decrypt(envelope: str, password: str) -> str:
    """Reverse :func:`encrypt`.

    Every failure (bad encoding, short envelope, tag mismatch, bad UTF-8)
    surfaces as the same :class:`DecryptionFailed`.
    """
    try:
        raw = base64.b64decode(envelope.encode("ascii"), validate=True)
        if len(raw) < _HEADER_LENGTH:
            raise ValueError("envelope too short")

        salt = raw[:SALT_LENGTH]
        iv = raw[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
        tag = raw[SALT_LENGTH + IV_LENGTH:_HEADER_LENGTH]
        ciphertext = raw[_HEADER_LENGTH:]

        key = _derive_key(password, salt)
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, ValueError, binascii.Error, UnicodeError, AttributeError) as e:
        logger.debug("Decryption failed: %s", type(e).__name__)
        raise DecryptionFailed() from None


def encrypt_providers(providers: Sequence["ProviderRecord"], password: str) -> List["ProviderRecord"]:
    """加密每条记录的 apiKey，其余字段原样保留"""
    return [p.model_copy(update={"api_key": encrypt(p.api_key, password)}) for p in providers]


def decrypt_providers(providers: Sequence["ProviderRecord"], password: str) -> List["ProviderRecord"]:
    return [p.model_copy(update={"api_key": decrypt(p.api_key, password)}) for p in providers]

