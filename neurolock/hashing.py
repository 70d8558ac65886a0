"""
Salted one-way digests of feature vectors.

Implements:
- Salt generation from the OS cryptographic random source
- Canonical float32 serialization of feature vectors
- digest = H(serialize(vector) || salt) through a pluggable DigestAlgorithm
- Constant-time digest comparison
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, runtime_checkable

import numpy as np
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes

from neurolock.config import DEFAULT_DIGEST_ALGORITHM, DEFAULT_SALT_LENGTH
from neurolock.errors import (
    AllocationFailure, CryptoFailure, EntropyUnavailable, InvalidInput
)
from neurolock.features import as_array
from neurolock.memory import secure_buffer, secure_wipe

logger = logging.getLogger(__name__)

CANONICAL_DTYPE = np.dtype("<f4")


# ============================================================================
# Digest algorithms
# ============================================================================

@runtime_checkable
class DigestAlgorithm(Protocol):
    """One-way hash primitive used for template digests."""

    name: str
    digest_size: int

    def hash(self, data: bytes) -> bytes:
        ...


class Sha256:
    """SHA-256 backed by the cryptography package."""

    name = "sha256"
    digest_size = 32

    def hash(self, data: bytes) -> bytes:
        try:
            h = hashes.Hash(hashes.SHA256())
            h.update(data)
            return h.finalize()
        except MemoryError as e:
            raise AllocationFailure("Out of memory while hashing") from e
        except (UnsupportedAlgorithm, TypeError, ValueError) as e:
            raise CryptoFailure(f"SHA-256 computation failed: {e}") from e


_ALGORITHMS: Dict[str, DigestAlgorithm] = {
    Sha256.name: Sha256(),
}


def get_algorithm(name: str = DEFAULT_DIGEST_ALGORITHM) -> DigestAlgorithm:
    """
    Look up a digest algorithm by configuration name.

    Raises:
        InvalidInput: If the name is not registered
    """
    try:
        return _ALGORITHMS[name.lower()]
    except KeyError:
        raise InvalidInput(
            f"Unknown digest algorithm '{name}'. Available: {sorted(_ALGORITHMS)}"
        ) from None


# ============================================================================
# Salts and serialization
# ============================================================================

def generate_salt(length: int = DEFAULT_SALT_LENGTH) -> bytes:
    """
    Draw a fresh salt from the cryptographic random source (`secrets`).

    Args:
        length: Number of random bytes

    Returns:
        Salt bytes of exactly the requested length

    Raises:
        InvalidInput: If length is not positive
        EntropyUnavailable: If the source fails or returns a short read
    """
    if length <= 0:
        raise InvalidInput(f"Salt length must be positive, got {length}")
    try:
        salt = secrets.token_bytes(length)
    except (OSError, NotImplementedError) as e:
        raise EntropyUnavailable(f"OS random source unavailable: {e}") from e
    if len(salt) != length:
        raise EntropyUnavailable(f"Short read from random source: {len(salt)}/{length} bytes")
    logger.debug("Generated %d-byte salt", length)
    return salt


def serialize_features(vector) -> bytearray:
    """
    Canonical byte form of a feature vector.

    Little-endian IEEE-754 float32, vector order preserved. The caller owns
    the returned buffer and should wipe it.
    """
    values = as_array(vector)
    try:
        return bytearray(values.astype(CANONICAL_DTYPE, copy=False).tobytes())
    except MemoryError as e:
        raise AllocationFailure("Could not serialize feature vector") from e


# ============================================================================
# Salted digests
# ============================================================================

@dataclass(eq=False)
class SaltedDigest:
    """
    Digest bound to the salt it was computed with.

    Both fields are held in bytearrays so they can be wiped.
    """

    digest: bytearray
    salt: bytearray

    def __post_init__(self):
        self.digest = bytearray(self.digest)
        self.salt = bytearray(self.salt)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SaltedDigest):
            return NotImplemented
        return digest_equal(self.digest, other.digest) and digest_equal(self.salt, other.salt)

    __hash__ = None

    def hex(self) -> str:
        return digest_to_hex(self.digest)

    def wipe(self) -> None:
        secure_wipe(self.digest)
        secure_wipe(self.salt)


def digest(vector, salt: bytes, algorithm: Optional[DigestAlgorithm] = None) -> SaltedDigest:
    """
    Hash a feature vector together with a salt.

    The serialized vector and the salt are concatenated into one buffer and
    fed to the algorithm in a single call; the buffer is zeroed afterwards.

    Args:
        vector: FeatureVector or 1-D numeric sequence
        salt: Salt bytes
        algorithm: DigestAlgorithm (default: SHA-256)

    Returns:
        SaltedDigest holding the digest and a copy of the salt

    Raises:
        InvalidInput: If the salt is empty
        CryptoFailure: If the algorithm fails
        AllocationFailure: If buffers cannot be allocated
    """
    if not salt:
        raise InvalidInput("Salt must not be empty")
    algorithm = algorithm or get_algorithm()

    with secure_buffer(serialize_features(vector)) as message:
        message.extend(salt)
        out = algorithm.hash(message)

    if len(out) != algorithm.digest_size:
        raise CryptoFailure(
            f"{algorithm.name} returned {len(out)} bytes, expected {algorithm.digest_size}"
        )
    return SaltedDigest(digest=out, salt=salt)


def digest_equal(a: bytes, b: bytes) -> bool:
    """
    Compare two digests without short-circuiting on the first difference.

    Only the length comparison returns early; lengths are not secret.
    """
    if len(a) != len(b):
        return False
    result = 0
    for x, y in zip(memoryview(a).cast("B"), memoryview(b).cast("B")):
        result |= x ^ y
    return result == 0


def digest_to_hex(data: bytes) -> str:
    return bytes(data).hex()


def hamming_distance(a: bytes, b: bytes) -> int:
    """
    Number of differing bits between two digests.

    Not used for authentication decisions; a salted cryptographic digest
    gives no meaningful distance between similar inputs.

    Raises:
        InvalidInput: If the digests have different lengths
    """
    if len(a) != len(b):
        raise InvalidInput(f"Digests have different lengths: {len(a)} vs {len(b)}")
    return sum(bin(x ^ y).count("1")
               for x, y in zip(memoryview(a).cast("B"), memoryview(b).cast("B")))


def verify_digest(vector, salted: SaltedDigest,
                  algorithm: Optional[DigestAlgorithm] = None) -> bool:
    """
    Recompute the digest of vector with the stored salt and compare.

    Returns:
        True if the stored digest was computed over exactly this vector
    """
    fresh = digest(vector, bytes(salted.salt), algorithm)
    try:
        return digest_equal(fresh.digest, salted.digest)
    finally:
        fresh.wipe()
