"""
Credential helpers for service bindings.

Builds the connection URI and credential payload handed out for a binding,
and generates/hashes the passwords of issued identities.
"""

import hashlib
import hmac
import secrets
import uuid
from typing import Any, Dict
from urllib.parse import quote

from ..constants import BOOKSTORES_PATH_SEGMENT, PASSWORD_KEY, URI_KEY, USERNAME_KEY

_HASH_ALGORITHM = "sha256"
_HASH_ITERATIONS = 260_000
_SALT_BYTES = 16


def build_binding_uri(base_url: str, service_instance_id: str) -> str:
    """
    Build the connection URI of a bookstore instance.

    Appends the path segments ``bookstores`` and the instance id to the base
    URL. Each segment is percent-encoded so an id cannot add path levels.

    Example:
        >>> build_binding_uri("https://host", "i42")
        'https://host/bookstores/i42'
    """
    segments = (BOOKSTORES_PATH_SEGMENT, service_instance_id)
    path = "/".join(quote(segment, safe="") for segment in segments)
    return f"{base_url.rstrip('/')}/{path}"


def build_credentials(uri: str, username: str, password: str) -> Dict[str, Any]:
    """Assemble the credential payload stored with a binding."""
    return {
        URI_KEY: uri,
        USERNAME_KEY: username,
        PASSWORD_KEY: password,
    }


def generate_password() -> str:
    """Generate a random password for a newly issued identity."""
    return str(uuid.uuid4())


def hash_password(password: str) -> str:
    """
    Hash a password with salted PBKDF2.

    Returns:
        String of the form ``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``
    """
    salt = secrets.token_bytes(_SALT_BYTES)
    digest = hashlib.pbkdf2_hmac(_HASH_ALGORITHM, password.encode("utf-8"), salt, _HASH_ITERATIONS)
    return f"pbkdf2_{_HASH_ALGORITHM}${_HASH_ITERATIONS}${salt.hex()}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plaintext password against a hash produced by hash_password."""
    try:
        scheme, iterations, salt_hex, digest_hex = password_hash.split("$")
    except ValueError:
        return False
    if scheme != f"pbkdf2_{_HASH_ALGORITHM}":
        return False

    digest = hashlib.pbkdf2_hmac(
        _HASH_ALGORITHM, password.encode("utf-8"), bytes.fromhex(salt_hex), int(iterations)
    )
    return hmac.compare_digest(digest.hex(), digest_hex)
