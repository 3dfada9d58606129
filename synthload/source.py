"""
Synthetic bounded source.

Yields exactly ``num_records`` records in index order. Iteration is lazy and
restartable: every pass regenerates the same records, so an engine can
re-read a range after a failure. Records are grouped in bundles of
``bundle_size_records``; the optional bundle delay runs once before each
bundle, never per record.
"""

from __future__ import annotations

import logging
from typing import Iterator, List, Optional

from synthload.delay import Throttle, apply_delay
from synthload.models import Record, SourceOptions
from synthload.shaping import RecordShaper

logger = logging.getLogger(__name__)


class SyntheticSource:
    """
    Record generator over the index range [start, stop).

    Attributes:
        options: Source parameters.
        start: First index (inclusive).
        stop: Last index (exclusive); defaults to ``options.num_records``.
    """

    def __init__(
        self,
        options: SourceOptions,
        *,
        start: int = 0,
        stop: Optional[int] = None,
        _throttle: Optional[Throttle] = None,
    ) -> None:
        stop = options.num_records if stop is None else stop
        if not 0 <= start <= stop <= options.num_records:
            raise ValueError(
                f"invalid range [{start}, {stop}) for {options.num_records} records"
            )
        self.options = options
        self.start = start
        self.stop = stop
        self._shaper = RecordShaper.from_options(options)
        # Splits share the parent's throttle so the cap applies to the whole source.
        if _throttle is None and options.max_records_per_second is not None:
            _throttle = Throttle(options.max_records_per_second)
        self._throttle = _throttle

    def __len__(self) -> int:
        return self.stop - self.start

    def __iter__(self) -> Iterator[Record]:
        for bundle in self.bundles():
            yield from bundle

    def record(self, index: int) -> Record:
        """The record at ``index`` (same bytes on every call)."""
        return self._shaper.shape(index)

    def bundles(self) -> Iterator[List[Record]]:
        """Yield records bundle by bundle, applying the bundle delay first."""
        options = self.options
        size = options.bundle_size_records
        for bundle_start in range(self.start, self.stop, size):
            if options.bundle_delay is not None:
                apply_delay(options.bundle_delay, options.seed, "bundle", bundle_start)
            bundle = []
            for index in range(bundle_start, min(bundle_start + size, self.stop)):
                if self._throttle is not None:
                    self._throttle.wait()
                bundle.append(self._shaper.shape(index))
            yield bundle

    def split(self, num_splits: int) -> List["SyntheticSource"]:
        """
        Partition into at most ``num_splits`` disjoint contiguous ranges.

        Concatenating the splits in order yields exactly this source.
        """
        if num_splits < 1:
            raise ValueError("num_splits must be at least 1")
        total = len(self)
        if total == 0 or num_splits == 1:
            return [self]
        chunk = -(-total // num_splits)
        splits = []
        for split_start in range(self.start, self.stop, chunk):
            splits.append(
                SyntheticSource(
                    self.options,
                    start=split_start,
                    stop=min(split_start + chunk, self.stop),
                    _throttle=self._throttle,
                )
            )
        logger.debug("Split %d records into %d ranges", total, len(splits))
        return splits


def generate(options: SourceOptions) -> Iterator[Record]:
    """Lazily generate all records described by ``options``."""
    return iter(SyntheticSource(options))
