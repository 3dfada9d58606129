"""
Deterministic record shaping.

Every pseudo-random decision (lengths, bytes, hot-key choice, failure and
delay draws) is a pure function of a seed, a stream name and the record
identity. Each draw builds a local generator from a blake2b digest, so the
same inputs give byte-identical output across runs, processes and threads.

Usage:
    from synthload.shaping import RecordShaper, shape

    record = shape(7, key_size=8, value_size=SizeSpec(min=10, max=100), seed=42)

    shaper = RecordShaper(SizeSpec(min=8, max=8), SizeSpec(min=100, max=100), seed=1)
    records = [shaper.shape(i) for i in range(10)]
"""

from __future__ import annotations

import hashlib
import random
from typing import Union

from synthload.config import parse_size
from synthload.models import Record, SizeSpec, SourceOptions

_TWO_POW_64 = float(1 << 64)

Part = Union[int, str, bytes]


def derive_seed(seed: int, stream: str, *parts: Part) -> int:
    """64-bit integer derived from the seed, a stream name and identity parts."""
    digest = hashlib.blake2b(digest_size=8)
    digest.update(f"{seed}:{stream}".encode())
    for part in parts:
        digest.update(b"\x1f")
        digest.update(part if isinstance(part, bytes) else str(part).encode())
    return int.from_bytes(digest.digest(), "big")


def unit_draw(seed: int, stream: str, *parts: Part) -> float:
    """Deterministic draw in [0, 1)."""
    return derive_seed(seed, stream, *parts) / _TWO_POW_64


def local_rng(seed: int, stream: str, *parts: Part) -> random.Random:
    """A private generator for one record's draws; never the global RNG."""
    return random.Random(derive_seed(seed, stream, *parts))


def draw_size(spec: SizeSpec, seed: int, stream: str, *parts: Part) -> int:
    """Length in [spec.min, spec.max] inclusive."""
    if spec.fixed:
        return spec.min
    span = spec.max - spec.min + 1
    return spec.min + derive_seed(seed, stream, *parts) % span


def shaped_bytes(
    length: int,
    seed: int,
    stream: str,
    *parts: Part,
    random_fraction: float = 1.0,
) -> bytes:
    """
    ``length`` bytes whose first ``round(length * random_fraction)`` bytes are
    pseudo-random and the rest zero filler.
    """
    if length <= 0:
        return b""
    random_len = int(round(length * random_fraction))
    payload = local_rng(seed, stream, *parts).randbytes(random_len)
    return payload + bytes(length - random_len)


def record_digest(record: Record) -> bytes:
    """Stable identity of a record's content, used to key per-record draws."""
    digest = hashlib.blake2b(digest_size=16)
    digest.update(len(record.key).to_bytes(8, "big"))
    digest.update(record.key)
    digest.update(record.value)
    return digest.digest()


class RecordShaper:
    """
    Generates the record for a given index.

    Attributes:
        key_size: Key length spec.
        value_size: Value length spec.
        seed: Seed for all draws.
        num_hot_keys: Size of the hot key set.
        hot_key_fraction: Probability a record uses a hot key.
        value_random_fraction: Share of random (incompressible) value bytes.
    """

    def __init__(
        self,
        key_size: SizeSpec,
        value_size: SizeSpec,
        *,
        seed: int = 42,
        num_hot_keys: int = 0,
        hot_key_fraction: float = 0.0,
        value_random_fraction: float = 1.0,
    ) -> None:
        self.key_size = key_size
        self.value_size = value_size
        self.seed = seed
        self.num_hot_keys = num_hot_keys
        self.hot_key_fraction = hot_key_fraction
        self.value_random_fraction = value_random_fraction

    @classmethod
    def from_options(cls, options: SourceOptions) -> "RecordShaper":
        return cls(
            options.key_size_bytes,
            options.value_size_bytes,
            seed=options.seed,
            num_hot_keys=options.num_hot_keys,
            hot_key_fraction=options.hot_key_fraction,
            value_random_fraction=options.value_random_fraction,
        )

    def shape(self, index: int) -> Record:
        return Record(key=self._key(index), value=self._value(index))

    def _key(self, index: int) -> bytes:
        seed = self.seed
        if (
            self.num_hot_keys > 0
            and unit_draw(seed, "hot", index) < self.hot_key_fraction
        ):
            hot = derive_seed(seed, "hot-index", index) % self.num_hot_keys
            length = draw_size(self.key_size, seed, "hot-key-size", hot)
            return shaped_bytes(length, seed, "hot-key", hot)
        length = draw_size(self.key_size, seed, "key-size", index)
        return shaped_bytes(length, seed, "key", index)

    def _value(self, index: int) -> bytes:
        length = draw_size(self.value_size, self.seed, "value-size", index)
        return shaped_bytes(
            length,
            self.seed,
            "value",
            index,
            random_fraction=self.value_random_fraction,
        )


def shape(
    index: int,
    key_size: Union[SizeSpec, int],
    value_size: Union[SizeSpec, int],
    seed: int = 42,
) -> Record:
    """
    Shape the record at ``index``. Integers are fixed sizes.

    Raises:
        ConfigurationError: If a size spec is negative or inconsistent.
    """
    return RecordShaper(parse_size(key_size), parse_size(value_size), seed=seed).shape(
        index
    )
