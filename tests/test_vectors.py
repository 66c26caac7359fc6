"""Tests for vectors.py — packing and cosine similarity."""

from __future__ import annotations

import numpy as np
import pytest

from embedvault.vectors import cosine_similarities, pack_vector, unpack_vector


class TestPacking:
    def test_float32_little_endian(self):
        blob = pack_vector([1.0, -2.0])
        assert len(blob) == 8
        assert np.frombuffer(blob, dtype="<f4").tolist() == [1.0, -2.0]

    def test_empty(self):
        assert unpack_vector(None) == []
        assert unpack_vector(b"") == []

    def test_precision_is_float32(self):
        [value] = unpack_vector(pack_vector([0.1]))
        assert value == pytest.approx(0.1, rel=1e-6)
        assert value != 0.1


class TestCosineSimilarities:
    def test_basic(self):
        matrix = np.array([[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0], [3.0, 3.0]], dtype=np.float32)
        sims = cosine_similarities([2.0, 0.0], matrix)
        assert sims.tolist() == pytest.approx([1.0, 0.0, -1.0, 2**-0.5], abs=1e-6)

    def test_zero_rows_score_zero(self):
        matrix = np.array([[0.0, 0.0], [1.0, 0.0]], dtype=np.float32)
        assert cosine_similarities([1.0, 0.0], matrix).tolist() == pytest.approx([0.0, 1.0])

    def test_zero_query(self):
        matrix = np.array([[1.0, 0.0]], dtype=np.float32)
        assert cosine_similarities([0.0, 0.0], matrix).tolist() == [0.0]

    def test_empty_matrix(self):
        assert cosine_similarities([1.0], np.zeros((0, 1), dtype=np.float32)).size == 0
