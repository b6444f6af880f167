"""Tests for batch splitting."""

import pytest

from hrflow.services.batch_splitter import BATCH_SIZE, split_into_batches


class TestSplitIntoBatches:
    """Test cases for split_into_batches."""

    def test_default_size(self):
        """Test 120 rows split into 50, 50 and 20."""
        batches = list(split_into_batches(range(120)))

        assert BATCH_SIZE == 50
        assert [len(batch) for batch in batches] == [50, 50, 20]

    def test_preserves_order(self):
        """Test concatenated batches equal the input."""
        rows = list(range(7))
        batches = list(split_into_batches(rows, 3))

        assert batches == [[0, 1, 2], [3, 4, 5], [6]]

    def test_exact_multiple(self):
        """Test no empty trailing batch."""
        assert [len(b) for b in split_into_batches(range(100), 50)] == [50, 50]

    def test_empty_input(self):
        """Test an empty input yields no batches."""
        assert list(split_into_batches([])) == []

    def test_consumes_lazily(self):
        """Test rows are pulled one batch at a time."""
        pulled = []

        def rows():
            for i in range(10):
                pulled.append(i)
                yield i

        batches = split_into_batches(rows(), 4)
        first = next(batches)

        assert first == [0, 1, 2, 3]
        assert len(pulled) <= 5

    def test_invalid_size(self):
        """Test a non-positive batch size is rejected."""
        with pytest.raises(ValueError):
            list(split_into_batches([1], 0))
