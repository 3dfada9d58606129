"""Tests for deterministic record shaping."""

import pytest

from synthload.config import parse_size
from synthload.exceptions import ConfigurationError
from synthload.models import Record, SizeSpec
from synthload.shaping import (
    RecordShaper,
    derive_seed,
    draw_size,
    record_digest,
    shape,
    shaped_bytes,
    unit_draw,
)


class TestDraws:
    def test_derive_seed_is_stable(self):
        assert derive_seed(42, "key", 7) == derive_seed(42, "key", 7)

    def test_derive_seed_depends_on_every_input(self):
        base = derive_seed(42, "key", 7)
        assert derive_seed(43, "key", 7) != base
        assert derive_seed(42, "value", 7) != base
        assert derive_seed(42, "key", 8) != base

    def test_unit_draw_in_unit_interval(self):
        draws = [unit_draw(1, "x", i) for i in range(500)]
        assert all(0.0 <= d < 1.0 for d in draws)
        # Not degenerate
        assert min(draws) < 0.1
        assert max(draws) > 0.9

    def test_draw_size_fixed(self):
        spec = SizeSpec(min=12, max=12)
        assert all(draw_size(spec, 1, "s", i) == 12 for i in range(50))

    def test_draw_size_range_inclusive(self):
        spec = SizeSpec(min=3, max=5)
        sizes = {draw_size(spec, 1, "s", i) for i in range(300)}
        assert sizes == {3, 4, 5}

    def test_shaped_bytes_length(self):
        assert len(shaped_bytes(33, 1, "v", 0)) == 33
        assert shaped_bytes(0, 1, "v", 0) == b""

    def test_shaped_bytes_random_fraction_leaves_zero_filler(self):
        data = shaped_bytes(100, 1, "v", 0, random_fraction=0.25)
        assert len(data) == 100
        assert data[25:] == bytes(75)

    def test_record_digest_distinguishes_key_value_boundary(self):
        a = Record(key=b"ab", value=b"c")
        b = Record(key=b"a", value=b"bc")
        assert record_digest(a) != record_digest(b)


class TestShape:
    def test_fixed_sizes(self):
        for index in range(100):
            record = shape(index, 8, 8)
            assert len(record.key) == 8
            assert len(record.value) == 8

    def test_range_sizes_within_bounds(self):
        key_size = SizeSpec(min=1, max=16)
        value_size = SizeSpec(min=10, max=100)
        for index in range(200):
            record = shape(index, key_size, value_size)
            assert 1 <= len(record.key) <= 16
            assert 10 <= len(record.value) <= 100

    def test_same_index_same_bytes(self):
        assert shape(5, 8, 32, seed=9) == shape(5, 8, 32, seed=9)

    def test_different_index_different_bytes(self):
        assert shape(5, 8, 32) != shape(6, 8, 32)

    def test_seed_changes_output(self):
        assert shape(5, 8, 32, seed=1) != shape(5, 8, 32, seed=2)

    def test_zero_sizes(self):
        record = shape(0, 0, 0)
        assert record.key == b""
        assert record.value == b""
        assert record.size == 0

    def test_negative_size_fails_fast(self):
        with pytest.raises(ConfigurationError):
            shape(0, -1, 8)

    def test_inconsistent_range_fails_fast(self):
        with pytest.raises(ConfigurationError):
            parse_size({"min": 5, "max": 2})


class TestRecordShaper:
    def test_hot_keys_limit_distinct_keys(self):
        shaper = RecordShaper(
            SizeSpec(min=8, max=8),
            SizeSpec(min=8, max=8),
            num_hot_keys=3,
            hot_key_fraction=1.0,
        )
        keys = {shaper.shape(i).key for i in range(200)}
        assert 1 <= len(keys) <= 3

    def test_no_hot_keys_gives_distinct_keys(self):
        shaper = RecordShaper(SizeSpec(min=8, max=8), SizeSpec(min=8, max=8))
        keys = {shaper.shape(i).key for i in range(200)}
        assert len(keys) == 200

    def test_partial_hot_key_fraction(self):
        shaper = RecordShaper(
            SizeSpec(min=8, max=8),
            SizeSpec(min=8, max=8),
            num_hot_keys=1,
            hot_key_fraction=0.5,
        )
        keys = [shaper.shape(i).key for i in range(400)]
        hot_key = max(set(keys), key=keys.count)
        hot_count = keys.count(hot_key)
        assert 120 < hot_count < 280

    def test_compressible_values(self):
        shaper = RecordShaper(
            SizeSpec(min=4, max=4),
            SizeSpec(min=40, max=40),
            value_random_fraction=0.0,
        )
        assert shaper.shape(3).value == bytes(40)
