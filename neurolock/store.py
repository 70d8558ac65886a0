"""
File-backed template store.

One binary record per identity, named <owner_id><extension> inside the store
directory. Records are written in a single forward pass to a temporary file
in the same directory and moved into place with an atomic replace, so a
reader never sees a half-written record.

Record layout (little-endian):

    format_version   uint32
    owner_id         64 bytes, UTF-8, null-padded
    task_type        uint32
    created_at       int64
    last_used        int64
    n_features       uint64, then n_features float32 values
    digest_len       uint64, then digest bytes
    salt_len         uint64, then salt bytes
"""

import logging
import os
import struct
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from neurolock.config import MentalTask, NeuroLockConfig
from neurolock.errors import CorruptRecord, InvalidInput, IOFailure, NotFound
from neurolock.features import FeatureVector
from neurolock.hashing import CANONICAL_DTYPE, SaltedDigest, get_algorithm
from neurolock.memory import secure_buffer
from neurolock.template import (
    FORMAT_VERSION, OWNER_ID_MAX_BYTES, Template, validate_owner_id
)

logger = logging.getLogger(__name__)

HEADER = struct.Struct(f"<I{OWNER_ID_MAX_BYTES}sIqq")
LENGTH = struct.Struct("<Q")
FLOAT_SIZE = CANONICAL_DTYPE.itemsize


# ============================================================================
# Record encoding
# ============================================================================

def encode_template(template: Template) -> bytearray:
    """
    Serialize a template into its record bytes.

    Each length prefix is written immediately before its payload. The caller
    owns the returned buffer and should wipe it.
    """
    owner = template.owner_id.encode("utf-8")
    features = template.feature_vector.values.astype(CANONICAL_DTYPE, copy=False)

    record = bytearray(HEADER.pack(
        template.format_version,
        owner.ljust(OWNER_ID_MAX_BYTES, b"\0"),
        int(template.task_type),
        template.created_at,
        template.last_used,
    ))
    record += LENGTH.pack(features.shape[0])
    record += features.tobytes()
    record += LENGTH.pack(len(template.digest.digest))
    record += template.digest.digest
    record += LENGTH.pack(len(template.digest.salt))
    record += template.digest.salt
    return record


class _Reader:
    """Forward-only cursor over record bytes."""

    def __init__(self, data: bytearray):
        self.view = memoryview(data)
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self.view) - self.offset

    def take(self, n: int, what: str) -> memoryview:
        if n > self.remaining:
            raise CorruptRecord(
                f"Record truncated: {what} needs {n} bytes, {self.remaining} remain"
            )
        chunk = self.view[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def unpack(self, fmt: struct.Struct, what: str) -> Tuple:
        return fmt.unpack(self.take(fmt.size, what))

    def block(self, item_size: int, what: str) -> Tuple[int, memoryview]:
        (count,) = self.unpack(LENGTH, f"{what} length")
        if count > self.remaining // item_size:
            raise CorruptRecord(
                f"Declared {what} length {count} exceeds remaining {self.remaining} bytes"
            )
        return count, self.take(count * item_size, what)

    def release(self):
        self.view.release()


def decode_template(data: bytearray) -> Template:
    """
    Parse record bytes into a Template.

    Raises:
        CorruptRecord: If lengths, version or enum values are inconsistent
    """
    reader = _Reader(data)
    try:
        version, owner_raw, task_raw, created_at, last_used = reader.unpack(HEADER, "header")
        if version != FORMAT_VERSION:
            raise CorruptRecord(f"Unsupported template format version {version}")

        try:
            owner_id = validate_owner_id(bytes(owner_raw).rstrip(b"\0").decode("utf-8"))
            task = MentalTask(task_raw)
        except (UnicodeDecodeError, InvalidInput, ValueError) as e:
            raise CorruptRecord(f"Invalid template header: {e}") from e

        n_features, feature_bytes = reader.block(FLOAT_SIZE, "feature vector")
        if n_features == 0:
            raise CorruptRecord("Template has an empty feature vector")
        with secure_buffer(feature_bytes) as raw_features:
            values = np.frombuffer(raw_features, dtype=CANONICAL_DTYPE)
            try:
                vector = FeatureVector(values, task=task, timestamp_ms=created_at * 1000)
            except InvalidInput as e:
                raise CorruptRecord(f"Invalid feature values: {e}") from e
            finally:
                del values

        _, digest_bytes = reader.block(1, "digest")
        _, salt_bytes = reader.block(1, "salt")
        if not len(digest_bytes) or not len(salt_bytes):
            vector.wipe()
            raise CorruptRecord("Template has an empty digest or salt")
        if reader.remaining:
            vector.wipe()
            raise CorruptRecord(f"{reader.remaining} unexpected trailing bytes")

        return Template(
            owner_id=owner_id,
            task_type=task,
            feature_vector=vector,
            digest=SaltedDigest(digest=digest_bytes, salt=salt_bytes),
            created_at=created_at,
            last_used=last_used,
            format_version=version,
        )
    finally:
        reader.release()


def read_record(path: Path) -> Template:
    """
    Read and decode a single record file.

    Only the structure is checked; see TemplateStore.load for the full
    validation.

    Raises:
        NotFound: If the file does not exist
        IOFailure: If the file cannot be read
        CorruptRecord: If the record is structurally invalid
    """
    try:
        with open(path, "rb") as f:
            data = bytearray(f.read())
    except FileNotFoundError:
        raise NotFound(f"No template record at {path}") from None
    except OSError as e:
        raise IOFailure(f"Failed to read template record {path}: {e}") from e

    with secure_buffer(data) as record:
        return decode_template(record)


# ============================================================================
# Store
# ============================================================================

class TemplateStore:
    """
    Directory of template records, one per owner id.

    Existence checks before enrolment are the caller's job; save() simply
    replaces whatever record is present.
    """

    def __init__(self, directory: Optional[Path] = None,
                 config: Optional[NeuroLockConfig] = None):
        """
        Initialize TemplateStore.

        Args:
            directory: Store directory (default: config.template_dir)
            config: Configuration supplying the extension, expected
                dimension and digest algorithm
        """
        self.config = config or NeuroLockConfig()
        self.directory = Path(directory) if directory else Path(self.config.template_dir)
        self.extension = self.config.template_extension

    def path_for(self, owner_id: str) -> Path:
        """Get path for an owner's template record."""
        return self.directory / f"{validate_owner_id(owner_id)}{self.extension}"

    def exists(self, owner_id: str) -> bool:
        return self.path_for(owner_id).is_file()

    def save(self, template: Template) -> Path:
        """
        Write a template record atomically.

        Args:
            template: Template to persist

        Returns:
            Path of the written record

        Raises:
            IOFailure: If any part of the write fails; no partial record is
                left behind
        """
        path = self.path_for(template.owner_id)
        temp_path = None
        with secure_buffer(encode_template(template)) as record:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                fd, temp_name = tempfile.mkstemp(
                    dir=self.directory, prefix=f".{template.owner_id}.", suffix=".tmp"
                )
                temp_path = Path(temp_name)
                with os.fdopen(fd, "wb") as f:
                    f.write(record)
                    f.flush()
                    os.fsync(f.fileno())
                temp_path.replace(path)
            except OSError as e:
                if temp_path is not None:
                    temp_path.unlink(missing_ok=True)
                raise IOFailure(f"Failed to save template for '{template.owner_id}': {e}") from e

        logger.info("Template saved to %s", path)
        return path

    def load(self, owner_id: str) -> Template:
        """
        Read and validate an owner's template record.

        Returns:
            Template identical to the one that was saved

        Raises:
            NotFound: If no record exists
            CorruptRecord: If the record is structurally invalid or its digest
                does not match its feature vector
            IOFailure: If the record cannot be read
        """
        path = self.path_for(owner_id)
        try:
            template = read_record(path)
        except NotFound:
            raise NotFound(f"No template found for user '{owner_id}'") from None

        try:
            self._check(template, owner_id)
        except CorruptRecord:
            template.wipe()
            raise

        logger.info("Template loaded from %s", path)
        return template

    def _check(self, template: Template, owner_id: str) -> None:
        if template.owner_id != owner_id:
            raise CorruptRecord(
                f"Record for '{owner_id}' belongs to '{template.owner_id}'"
            )
        expected = self.config.dimension
        if expected is not None and template.dimension != expected:
            raise CorruptRecord(
                f"Template has {template.dimension} features, expected {expected}"
            )
        algorithm = get_algorithm(self.config.digest_algorithm)
        if len(template.digest.digest) != algorithm.digest_size:
            raise CorruptRecord(
                f"Digest is {len(template.digest.digest)} bytes, "
                f"{algorithm.name} produces {algorithm.digest_size}"
            )
        if not template.verify_digest(algorithm):
            raise CorruptRecord(f"Digest does not match feature vector for '{owner_id}'")

    def delete(self, owner_id: str) -> None:
        """
        Remove an owner's record.

        Raises:
            NotFound: If no record exists
            IOFailure: If removal fails
        """
        path = self.path_for(owner_id)
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFound(f"No template found for user '{owner_id}'") from None
        except OSError as e:
            raise IOFailure(f"Failed to delete template for '{owner_id}': {e}") from e
        logger.info("Template deleted: %s", path)

    def touch(self, owner_id: str, timestamp: Optional[int] = None) -> int:
        """
        Update last_used on a stored template.

        Returns:
            The new last_used value
        """
        with self.load(owner_id) as template:
            template.touch(timestamp)
            self.save(template)
            return template.last_used

    def list_owners(self) -> List[str]:
        """List owner ids with a record in the store."""
        if not self.directory.is_dir():
            return []
        owners = []
        for path in self.directory.glob(f"*{self.extension}"):
            if path.is_file() and not path.name.startswith("."):
                owners.append(path.name[:-len(self.extension)])
        return sorted(owners)
