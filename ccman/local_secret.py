"""本地密码加密（机器派生密钥）

记住的 WebDAV 密码和同步密码以 Fernet 密文保存在 config.yaml 中，
密钥由主机名和用户名派生，换机器后无法解密。
"""

import base64
import getpass
import platform

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import DecryptionFailed

_MACHINE_SALT = b"ccman-local-secret-v1"


def _machine_fernet() -> Fernet:
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    seed = f"{platform.node()}:{user}:{platform.system()}"
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=_MACHINE_SALT, iterations=100000)
    key = kdf.derive(seed.encode("utf-8"))
    return Fernet(base64.urlsafe_b64encode(key))


def encrypt_local_secret(value: str) -> str:
    return _machine_fernet().encrypt(value.encode("utf-8")).decode("ascii")


def decrypt_local_secret(token: str) -> str:
    try:
        return _machine_fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, ValueError) as e:
        raise DecryptionFailed("stored password cannot be decrypted on this machine") from e
