"""
Scoped handling of sensitive buffers.

Serialized feature vectors, salts and digests are held in mutable buffers
(bytearray or numpy arrays) so they can be overwritten with zeros as soon as
the owning operation ends, whichever way it ends.
"""

from contextlib import contextmanager
from typing import Iterator, Union

import numpy as np

from neurolock.errors import AllocationFailure


Wipeable = Union[bytearray, memoryview, np.ndarray]


def secure_wipe(buffer: Wipeable) -> None:
    """
    Overwrite a mutable buffer with zeros in place.

    Read-only numpy arrays that own their memory are made writeable for the
    duration of the wipe and locked again afterwards.

    Args:
        buffer: bytearray, writable memoryview or numpy array
    """
    if buffer is None:
        return
    if isinstance(buffer, np.ndarray):
        was_writeable = buffer.flags.writeable
        if not was_writeable:
            buffer.setflags(write=True)
        buffer.fill(0)
        if not was_writeable:
            buffer.setflags(write=False)
        return
    view = memoryview(buffer).cast("B")
    view[:] = bytes(len(view))


@contextmanager
def secure_buffer(data=b"") -> Iterator[bytearray]:
    """
    Hold data in a bytearray that is zeroed when the block exits.

    A bytearray argument is adopted as is; anything else is copied.

    Args:
        data: Initial contents (bytes-like) or a length to allocate

    Yields:
        The mutable buffer
    """
    try:
        buf = data if isinstance(data, bytearray) else bytearray(data)
    except MemoryError as e:
        raise AllocationFailure("Could not allocate secure buffer") from e
    try:
        yield buf
    finally:
        secure_wipe(buf)


@contextmanager
def wiped_array(array: np.ndarray) -> Iterator[np.ndarray]:
    """Yield a numpy array and zero it when the block exits."""
    try:
        yield array
    finally:
        secure_wipe(array)
