"""
Vault Crypto Core — Per-value token encoding and decoding.

Each leaf value is encrypted on its own and stored as a token:

    relic:v1:base64([iterations 4B uint32 BE][salt 16B][iv 12B][ciphertext + GCM tag 16B])

- Key: PBKDF2-HMAC-SHA256(master_key, salt, iterations) → 32 bytes
- Cipher: AES-256-GCM, 96-bit random IV, 128-bit tag
- Plaintext: orjson encoding of the value, so JSON types survive the trip

Security Note:
    Never log plaintext or ciphertext values.
    Salt and IV are fresh per call; encoding the same value twice always
    yields two different tokens.
"""
import os
import re
import struct
import base64
import binascii
import logging
from collections.abc import Mapping
from typing import Any, Optional

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import DecryptFailed, InvalidFormat, UnsupportedVersion
from .kdf import KeyCache, derive_key

logger = logging.getLogger("relic.vault")

TOKEN_TAG = "relic:"
TOKEN_VERSION = "v1"
ENCRYPTED_VALUE_PREFIX = f"{TOKEN_TAG}{TOKEN_VERSION}:"

SALT_SIZE = 16
NONCE_SIZE = 12  # 96-bit IV
ITERATIONS_SIZE = 4  # uint32 big-endian
TAG_SIZE = 16  # GCM tag

DEFAULT_ITERATIONS = 600_000
# token iteration counts above this are treated as tampering
MAX_ITERATIONS = 10_000_000

_HEADER_SIZE = ITERATIONS_SIZE + SALT_SIZE + NONCE_SIZE
_MIN_PAYLOAD = _HEADER_SIZE + TAG_SIZE
_VERSION_RE = re.compile(r"^relic:(v\d+):")


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> bytes:
    """Serialize a leaf value to bytes for encryption.

    Supports: str, int, float, bool, None and lists of those.

    Integers must fit in 64 bits. orjson refuses to encode wider ones, and
    when parsing JSON text it reads them as floats, so a huge integer
    typed into the editor comes back rounded. Store such numbers as strings.

    Raises:
        InvalidFormat: If the value is a mapping or not JSON-serializable.
    """
    if isinstance(value, Mapping):
        raise InvalidFormat("Mappings are subtrees and cannot be encrypted as a leaf")
    try:
        return orjson.dumps(value)
    except orjson.JSONEncodeError as err:
        raise InvalidFormat(
            f"Unsupported leaf type: {type(value).__name__}"
        ) from err


def deserialize_value(data: bytes) -> Any:
    """Deserialize bytes produced by :func:`serialize_value`."""
    return orjson.loads(data)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

def is_encoded(value: Any) -> bool:
    """Return True if ``value`` looks like an encrypted token.

    Any ``relic:v<N>:`` prefix with a numeric version counts, so tokens from
    unknown versions are routed to :func:`decode_leaf` and rejected there
    instead of being passed through as plaintext. Other strings, including
    ones that merely start with ``relic:``, are plaintext.
    """
    return isinstance(value, str) and _VERSION_RE.match(value) is not None


def _derive(master_key: str, salt: bytes, iterations: int, cache: Optional[KeyCache]) -> bytes:
    if cache is not None:
        return cache.derive(master_key, salt, iterations)
    return derive_key(master_key, salt, iterations)


def encode_leaf(
    master_key: str,
    value: Any,
    iterations: int = DEFAULT_ITERATIONS,
    cache: Optional[KeyCache] = None,
) -> str:
    """Encrypt a single leaf value into a token.

    Args:
        master_key: Master key string.
        value: JSON scalar or array.
        iterations: PBKDF2 iteration count stored in the token.
        cache: Optional key cache shared across calls.

    Returns:
        ``relic:v1:`` token string.
    """
    if not 1 <= iterations <= 0xFFFFFFFF:
        raise ValueError(f"iterations out of range: {iterations}")
    plaintext = serialize_value(value)
    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    key = _derive(master_key, salt, iterations, cache)
    ct = AESGCM(key).encrypt(nonce, plaintext, None)
    payload = struct.pack("!I", iterations) + salt + nonce + ct
    return ENCRYPTED_VALUE_PREFIX + base64.b64encode(payload).decode("ascii")


def decode_leaf(
    master_key: str,
    token: str,
    cache: Optional[KeyCache] = None,
) -> Any:
    """Decrypt a token back to its original value.

    Args:
        master_key: Master key string.
        token: Token produced by :func:`encode_leaf`.
        cache: Optional key cache shared across calls.

    Returns:
        The original leaf value, with its JSON type.

    Raises:
        InvalidFormat: Token is not a relic token or is malformed.
        UnsupportedVersion: Token carries an unknown version tag.
        DecryptFailed: Wrong master key or tampered token.
    """
    match = _VERSION_RE.match(token) if isinstance(token, str) else None
    if match is None:
        raise InvalidFormat("Not an encrypted value")
    if not token.startswith(ENCRYPTED_VALUE_PREFIX):
        raise UnsupportedVersion(match.group(1))

    try:
        payload = base64.b64decode(
            token[len(ENCRYPTED_VALUE_PREFIX):], validate=True,
        )
    except (binascii.Error, ValueError):
        raise InvalidFormat("Encrypted value is not valid base64") from None
    if len(payload) < _MIN_PAYLOAD:
        raise InvalidFormat(
            f"Encrypted value too short: {len(payload)} bytes "
            f"(minimum {_MIN_PAYLOAD})"
        )

    iterations = struct.unpack("!I", payload[:ITERATIONS_SIZE])[0]
    salt = payload[ITERATIONS_SIZE:ITERATIONS_SIZE + SALT_SIZE]
    nonce = payload[ITERATIONS_SIZE + SALT_SIZE:_HEADER_SIZE]
    ct = payload[_HEADER_SIZE:]

    if not 1 <= iterations <= MAX_ITERATIONS:
        logger.debug("Rejecting token with iteration count %d", iterations)
        raise DecryptFailed()

    key = _derive(master_key, salt, iterations, cache)
    try:
        plaintext = AESGCM(key).decrypt(nonce, ct, None)
        return deserialize_value(plaintext)
    except (InvalidTag, orjson.JSONDecodeError):
        raise DecryptFailed() from None
