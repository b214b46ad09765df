"""
Unique Visitor Estimator

Wrapper around datasketch's HyperLogLog++ for counting distinct visitor
fingerprints per day in fixed memory.

Memory: 2^p one-byte registers (16 KB at the default p=14)
Error: ~1.04 / sqrt(2^p) standard error (~0.81% at p=14)

The engine hashes visitors itself (see fingerprint.py), so the estimator is
fed ready-made unsigned 64-bit hashes instead of raw items. Serialized form
(version 1):

    byte 0      format version
    byte 1      precision p
    bytes 2..   2^p registers, each in [0, 65 - p]

Example:
    >>> est = Estimator(precision=14)
    >>> est.add(0x9E3779B97F4A7C15)
    >>> est.add(0x9E3779B97F4A7C15)  # Duplicate
    >>> est.cardinality()
    1
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np
from datasketch import HyperLogLogPlusPlus

from visit_analytics.core.exceptions import CorruptEstimatorError

FORMAT_VERSION = 1
HEADER_SIZE = 2
MIN_PRECISION = 4
MAX_PRECISION = 16
UINT64_MAX = (1 << 64) - 1


def _uint64_from_bytes(data: bytes) -> int:
    # The "hash function" handed to datasketch: values are already hashed
    return int.from_bytes(data, "big")


class Estimator:
    """
    Fixed-precision HyperLogLog set.

    add() and merge() never lower a register, so re-adding a hash or merging
    an estimator into itself leaves the estimate unchanged.
    """

    def __init__(self, precision: int = 14, registers: Optional[np.ndarray] = None):
        if not MIN_PRECISION <= precision <= MAX_PRECISION:
            raise ValueError(
                f"Precision must be {MIN_PRECISION}..{MAX_PRECISION}, got {precision}"
            )
        if registers is None:
            self._hll = HyperLogLogPlusPlus(p=precision, hashfunc=_uint64_from_bytes)
        else:
            self._hll = HyperLogLogPlusPlus(reg=registers, hashfunc=_uint64_from_bytes)
        self._precision = precision

    @property
    def precision(self) -> int:
        return self._precision

    @property
    def num_registers(self) -> int:
        return 1 << self._precision

    @property
    def standard_error(self) -> float:
        return 1.04 / math.sqrt(self.num_registers)

    @property
    def max_register_value(self) -> int:
        return 65 - self._precision

    def add(self, raw_hash: int) -> None:
        """Fold an unsigned 64-bit hash into the set."""
        if not 0 <= raw_hash <= UINT64_MAX:
            raise ValueError(f"raw_hash must be an unsigned 64-bit integer, got {raw_hash}")
        self._hll.update(raw_hash.to_bytes(8, "big"))

    def cardinality(self) -> int:
        """Estimated number of distinct hashes added."""
        return int(round(self._hll.count()))

    def is_empty(self) -> bool:
        return not np.any(self._hll.reg)

    def copy(self) -> Estimator:
        return Estimator(self._precision, registers=self._hll.reg.copy())

    def merge(self, other: Estimator) -> Estimator:
        """
        Union of two estimators as a new estimator.

        Register-wise max, so the operation is commutative and associative
        and neither input is modified.

        Raises:
            ValueError: If the precisions differ
        """
        if self._precision != other._precision:
            raise ValueError(
                f"Cannot merge estimators with different precision: "
                f"{self._precision} vs {other._precision}"
            )
        merged = np.maximum(self._hll.reg, other._hll.reg)
        return Estimator(self._precision, registers=merged)

    def serialize(self) -> bytes:
        header = bytes([FORMAT_VERSION, self._precision])
        return header + self._hll.reg.astype(np.uint8).tobytes()

    @classmethod
    def deserialize(cls, data: bytes, precision: Optional[int] = None) -> Estimator:
        """
        Rebuild an estimator from serialize() output.

        Args:
            data: Serialized bytes
            precision: Expected precision; a different stored precision is
                treated as corrupt so it can never be merged into this day

        Raises:
            CorruptEstimatorError: On any malformed input
        """
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise CorruptEstimatorError(f"expected bytes, got {type(data).__name__}")
        data = bytes(data)
        if len(data) < HEADER_SIZE:
            raise CorruptEstimatorError(f"truncated header ({len(data)} bytes)")

        version, stored_precision = data[0], data[1]
        if version != FORMAT_VERSION:
            raise CorruptEstimatorError(f"unsupported format version {version}")
        if not MIN_PRECISION <= stored_precision <= MAX_PRECISION:
            raise CorruptEstimatorError(f"invalid precision {stored_precision}")
        if precision is not None and stored_precision != precision:
            raise CorruptEstimatorError(
                f"precision {stored_precision} does not match expected {precision}"
            )

        expected_length = HEADER_SIZE + (1 << stored_precision)
        if len(data) != expected_length:
            raise CorruptEstimatorError(
                f"expected {expected_length} bytes for precision {stored_precision}, got {len(data)}"
            )

        registers = np.frombuffer(data, dtype=np.uint8, offset=HEADER_SIZE)
        if registers.size and int(registers.max()) > 65 - stored_precision:
            raise CorruptEstimatorError("register value out of range")

        return cls(stored_precision, registers=registers.astype(np.int8))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Estimator):
            return NotImplemented
        return self._precision == other._precision and bool(
            np.array_equal(self._hll.reg, other._hll.reg)
        )

    def __repr__(self) -> str:
        return f"Estimator(precision={self._precision}, cardinality~{self.cardinality()})"
