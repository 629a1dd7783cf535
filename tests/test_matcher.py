"""Tests for similarity and the in-memory embedding index."""

import numpy as np
import pytest


class TestCosineSimilarity:
    """Test cases for cosine_similarity."""

    def test_identical_and_orthogonal(self):
        """Test identical vectors score 1 and orthogonal vectors 0."""
        from face_engine.recognition import cosine_similarity

        a = np.array([1.0, 0.0, 0.0])
        assert cosine_similarity(a, a) == pytest.approx(1.0)
        assert cosine_similarity(a, np.array([0.0, 1.0, 0.0])) == pytest.approx(0.0)

    def test_opposite_is_clipped(self):
        """Test negative similarity is clipped to 0."""
        from face_engine.recognition import cosine_similarity

        assert cosine_similarity(np.array([1.0, 0.0]), np.array([-1.0, 0.0])) == 0.0

    def test_degenerate_inputs(self):
        """Test zero vectors and dimension mismatches score 0."""
        from face_engine.recognition import cosine_similarity

        assert cosine_similarity(np.zeros(3), np.ones(3)) == 0.0
        assert cosine_similarity(np.ones(3), np.ones(4)) == 0.0


class TestEmbeddingIndex:
    """Test cases for EmbeddingIndex."""

    def test_best_match_across_samples(self):
        """Test any sample of an identity can win."""
        from face_engine.recognition import EmbeddingIndex

        index = EmbeddingIndex()
        index.load([
            ("Alice", np.array([1.0, 0.0, 0.0])),
            ("Bob", np.array([0.0, 1.0, 0.0])),
            ("Alice", np.array([0.0, 0.0, 1.0])),
        ], revision=1)

        result = index.match(np.array([0.1, 0.0, 0.9]))
        assert result.identity == "Alice"
        assert result.candidates == 3
        assert index.revision == 1
        assert index.identities() == ["Alice", "Bob"]

    def test_tie_goes_to_first_in_stored_order(self):
        """Test exact ties keep the earlier entry."""
        from face_engine.recognition import EmbeddingIndex

        index = EmbeddingIndex()
        index.load([
            ("Bob", np.array([1.0, 0.0])),
            ("Alice", np.array([0.0, 1.0])),
        ])

        result = index.match(np.array([1.0, 1.0]))
        assert result.identity == "Bob"
        assert result.score == pytest.approx(np.sqrt(0.5))

    def test_empty_index(self):
        """Test an empty index returns no identity."""
        from face_engine.recognition import EmbeddingIndex

        result = EmbeddingIndex().match(np.array([1.0, 0.0]))
        assert result.identity is None
        assert result.score == 0.0
        assert result.candidates == 0
