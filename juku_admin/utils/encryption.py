"""
LINE channel credentials at rest.

Values are stored as compact JWE strings (`dir` + `A256GCM`) whose key is the
SHA-256 digest of ENCRYPTION_KEY. Rows written before encryption was enabled
hold plaintext; `is_encrypted` tells the two apart.
"""
import hashlib
from typing import Optional

from jose import jwe
from jose.exceptions import JOSEError

from juku_admin.config import settings


class DecryptionError(Exception):
    pass


def _key(secret: Optional[str] = None) -> bytes:
    return hashlib.sha256((secret or settings.ENCRYPTION_KEY).encode("utf-8")).digest()


def encrypt(plaintext: str, secret: Optional[str] = None) -> str:
    token = jwe.encrypt(plaintext.encode("utf-8"), _key(secret), algorithm="dir", encryption="A256GCM")
    return token.decode("ascii") if isinstance(token, bytes) else token


def decrypt(value: str, secret: Optional[str] = None) -> str:
    try:
        return jwe.decrypt(value, _key(secret)).decode("utf-8")
    except (JOSEError, ValueError) as e:
        raise DecryptionError("Failed to decrypt credential") from e


def is_encrypted(value: Optional[str]) -> bool:
    if not value or value.count(".") != 4:
        return False
    try:
        header = jwe.get_unverified_header(value)
    except (JOSEError, ValueError):
        return False
    return header.get("alg") == "dir" and header.get("enc") == "A256GCM"


def can_decrypt(value: Optional[str]) -> bool:
    if not is_encrypted(value):
        return False
    try:
        decrypt(value)
        return True
    except DecryptionError:
        return False


def reveal(value: str) -> str:
    """Plaintext of a stored credential, encrypted or legacy plaintext."""
    return decrypt(value) if is_encrypted(value) else value


def credential_preview(credential: Optional[str], show_start: int = 4, show_end: int = 4) -> str:
    if not credential or len(credential) <= show_start + show_end:
        return "****"
    return f"{credential[:show_start]}...{credential[-show_end:]}"
