"""float32 packing and cosine similarity for the vector index."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Sequence


def pack_vector(vector: Sequence[float]) -> bytes:
    """Encode *vector* as little-endian float32 bytes."""
    return np.asarray(vector, dtype="<f4").tobytes()


def unpack_vector(blob: bytes | None) -> list[float]:
    """Decode bytes written by :func:`pack_vector`; ``None`` or empty gives ``[]``."""
    if not blob:
        return []
    return np.frombuffer(blob, dtype="<f4").astype(np.float64).tolist()


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of *query* against every row of *matrix*.

    Rows (or a query) with zero norm score 0.
    """
    q = np.asarray(query, dtype=np.float32)
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float32)
    q_norm = float(np.linalg.norm(q))
    row_norms = np.linalg.norm(matrix, axis=1)
    denom = row_norms * q_norm
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(denom > 0, dots / denom, 0.0)
    return sims.astype(np.float32)
