"""Tests for the face recognizer."""

import numpy as np
import pytest

from conftest import FACE_BOX, make_flat_face, make_frame, make_live_face


def basis(index, dim=8):
    v = np.zeros(dim)
    v[index] = 1.0
    return v


class TestFaceRecognizerMatching:
    """Matching precomputed embeddings against the store."""

    def test_alice_and_bob(self, store, recognizer):
        """Test a query near Alice's vector recognizes Alice, not Bob."""
        store.store_embedding("Alice", basis(0))
        store.store_embedding("Bob", basis(1))

        query = np.zeros(8)
        query[0], query[1] = 0.95, 0.05

        result = recognizer.recognize_embedding(query, store)
        assert result.identity == "Alice"
        assert result.is_known
        assert result.confidence >= recognizer.threshold

    def test_exact_vector_matches(self, store, recognizer):
        """Test the stored vector itself matches with full confidence."""
        embedding = np.random.RandomState(0).rand(32)
        store.store_embedding("Alice", embedding)

        result = recognizer.recognize_embedding(embedding, store)
        assert result.identity == "Alice"
        assert result.confidence == pytest.approx(1.0)

    def test_below_threshold_reports_best_score(self, store, recognizer):
        """Test a weak match is Unknown but keeps the closest score."""
        store.store_embedding("Alice", np.array([1.0, 0.0]))

        result = recognizer.recognize_embedding(np.array([0.5, np.sqrt(0.75)]), store)
        assert result.identity == "Unknown"
        assert not result.is_known
        assert result.confidence == pytest.approx(0.5)
        assert recognizer.get_last_recognition_confidence() == pytest.approx(0.5)

    def test_any_sample_can_match(self, store, recognizer):
        """Test a query close to the second of two samples still matches."""
        store.store_embedding("Alice", basis(0))
        store.store_embedding("Alice", basis(5))

        query = basis(5) + 0.1 * basis(2)
        assert recognizer.recognize_embedding(query, store).identity == "Alice"

    def test_empty_store(self, store, recognizer):
        """Test an empty store yields Unknown with zero confidence and never raises."""
        result = recognizer.recognize(None, store)
        assert result.identity == "Unknown"
        assert result.confidence == 0.0

        result = recognizer.recognize(np.zeros((2, 2, 3), dtype=np.uint8), store)
        assert result.identity == "Unknown"
        assert recognizer.last_recognition_confidence == 0.0

    def test_index_refreshes_after_enrollment(self, store, recognizer):
        """Test new enrollments are visible to the next recognition."""
        store.store_embedding("Alice", basis(0))
        assert recognizer.recognize_embedding(basis(1), store).identity == "Unknown"

        store.store_embedding("Bob", basis(1))
        assert recognizer.recognize_embedding(basis(1), store).identity == "Bob"

        store.delete_identity("Bob")
        assert recognizer.recognize_embedding(basis(1), store).identity == "Unknown"

    def test_index_sees_changes_from_another_store(self, store, recognizer, db_settings):
        """Test a delete made through a second store on the same file is honored."""
        from face_engine.storage import EmbeddingStore

        store.store_embedding("Alice", basis(0))
        assert recognizer.recognize_embedding(basis(0), store).identity == "Alice"

        with EmbeddingStore(db_settings.path, settings=db_settings) as admin:
            assert admin.delete_identity("Alice")

        result = recognizer.recognize_embedding(basis(0), store)
        assert result.identity == "Unknown"
        assert result.confidence == 0.0

        with EmbeddingStore(db_settings.path, settings=db_settings) as admin:
            admin.store_embedding("Bob", basis(1))

        assert recognizer.recognize_embedding(basis(1), store).identity == "Bob"

    def test_inactive_identity_is_not_matched(self, store, recognizer):
        """Test deactivated identities are excluded from matching."""
        store.store_embedding("Alice", basis(0))
        store.set_identity_active("Alice", False)

        assert recognizer.recognize_embedding(basis(0), store).identity == "Unknown"

    def test_recognition_is_recorded(self, store, recognizer):
        """Test a successful match increments the identity's counter."""
        store.store_embedding("Alice", basis(0))
        recognizer.recognize_embedding(basis(0), store)
        recognizer.recognize_embedding(basis(1), store)

        assert store.get_identity("Alice").recognition_count == 1

    def test_threshold_is_configurable(self, store):
        """Test the acceptance threshold drives the decision."""
        from face_engine.recognition import FaceRecognizer

        store.store_embedding("Alice", np.array([1.0, 0.0]))
        query = np.array([0.5, np.sqrt(0.75)])

        assert FaceRecognizer(threshold=0.4).recognize_embedding(query, store).identity == "Alice"
        assert FaceRecognizer(threshold=0.9).recognize_embedding(query, store).identity == "Unknown"

    def test_invalid_threshold(self):
        """Test thresholds outside [0, 1] are rejected."""
        from face_engine.recognition import FaceRecognizer

        with pytest.raises(ValueError):
            FaceRecognizer(threshold=1.5)


class TestEmbeddingGeneration:
    """Embedding generation from face regions."""

    def test_histogram_embedding_shape(self, recognizer):
        """Test embeddings are unit-length with the backend dimension."""
        region = make_frame(seed=4, height=120, width=100)
        embedding = recognizer.generate_embedding(region)

        assert recognizer.embedding_backend == "histogram"
        assert embedding.shape == (recognizer.embedding_dim,)
        assert embedding.shape == (576,)
        assert np.linalg.norm(embedding) == pytest.approx(1.0)

    def test_embedding_is_deterministic(self, recognizer):
        """Test the same region always produces the same embedding."""
        region = make_frame(seed=5, height=80, width=80)
        assert np.array_equal(
            recognizer.generate_embedding(region),
            recognizer.generate_embedding(region.copy()),
        )

    def test_grayscale_region(self, recognizer):
        """Test single-channel regions can be embedded."""
        region = make_frame(seed=6, height=64, width=64)[:, :, 0]
        assert recognizer.generate_embedding(region).shape == (576,)

    def test_degenerate_regions_raise(self, recognizer):
        """Test missing, empty and tiny regions raise RecognitionError."""
        from face_engine.exceptions import RecognitionError

        with pytest.raises(RecognitionError):
            recognizer.generate_embedding(None)
        with pytest.raises(RecognitionError):
            recognizer.generate_embedding(np.zeros((0, 0, 3), dtype=np.uint8))
        with pytest.raises(RecognitionError):
            recognizer.generate_embedding(np.zeros((10, 40, 3), dtype=np.uint8))

    def test_recognize_face_region(self, store, recognizer, face_frame):
        """Test an enrolled face region is recognized from the same crop."""
        from face_engine.utils import crop_face

        region = crop_face(face_frame, FACE_BOX)
        store.store_embedding("Alice", recognizer.generate_embedding(region))

        result = recognizer.recognize(region, store)
        assert result.identity == "Alice"
        assert result.confidence == pytest.approx(1.0)

    def test_recognize_tiny_region_raises(self, store, recognizer):
        """Test a non-empty store still rejects an unusable region."""
        from face_engine.exceptions import RecognitionError

        store.store_embedding("Alice", basis(0))
        with pytest.raises(RecognitionError):
            recognizer.recognize(np.zeros((5, 5, 3), dtype=np.uint8), store)

    def test_backend_registry(self):
        """Test backends are created from the registry and unknown names raise."""
        from face_engine.recognition import FaceRecognizer, create_embedding_backend
        from face_engine.recognition.embeddings import EMBEDDING_BACKENDS

        assert set(EMBEDDING_BACKENDS) == {"histogram", "opencv_dnn"}
        assert create_embedding_backend("HISTOGRAM", face_size=96).name == "histogram"

        with pytest.raises(ValueError, match="nope"):
            create_embedding_backend("nope")
        with pytest.raises(ValueError):
            FaceRecognizer(embedding_backend="histgram")


class TestLivenessChecks:
    """Quality and anti-spoofing gates in embedding generation."""

    def _recognizer(self, **overrides):
        from face_engine.constants import RecognitionSettings
        from face_engine.recognition import FaceRecognizer

        settings = RecognitionSettings(fast_mode=False, **overrides)
        return FaceRecognizer(embedding_backend="histogram", settings=settings)

    def test_fast_mode_skips_checks(self, recognizer):
        """Test the default fast mode embeds regions the checks would reject."""
        assert recognizer.settings.fast_mode
        assert recognizer.generate_embedding(make_flat_face()).shape == (576,)
        assert recognizer.generate_embedding(np.full((80, 80, 3), 5, dtype=np.uint8)).shape == (576,)

    def test_live_region_passes(self):
        """Test a textured, well-exposed region is embedded."""
        rec = self._recognizer()
        assert rec.generate_embedding(make_live_face()).shape == (576,)

    def test_low_quality_region_is_rejected(self):
        """Test a dark featureless region fails the quality gate."""
        from face_engine.exceptions import RecognitionError

        rec = self._recognizer()
        with pytest.raises(RecognitionError, match="quality"):
            rec.generate_embedding(np.full((80, 80, 3), 5, dtype=np.uint8))

    def test_flat_region_is_rejected_as_spoof(self):
        """Test a low-texture region is flagged by the anti-spoofing check."""
        from face_engine.exceptions import RecognitionError

        rec = self._recognizer()
        with pytest.raises(RecognitionError, match="spoof"):
            rec.generate_embedding(make_flat_face())

    def test_checks_can_be_disabled_individually(self):
        """Test each gate has its own switch."""
        from face_engine.exceptions import RecognitionError

        no_spoof = self._recognizer(anti_spoofing=False)
        assert no_spoof.generate_embedding(make_flat_face()).shape == (576,)
        with pytest.raises(RecognitionError, match="quality"):
            no_spoof.generate_embedding(np.full((80, 80, 3), 5, dtype=np.uint8))

        no_quality = self._recognizer(quality_check=False)
        with pytest.raises(RecognitionError, match="spoof"):
            no_quality.generate_embedding(np.full((80, 80, 3), 5, dtype=np.uint8))

    def test_recognize_rejects_spoof_with_enrolled_corpus(self, store):
        """Test recognition propagates the rejection instead of matching."""
        from face_engine.exceptions import RecognitionError

        rec = self._recognizer()
        store.store_embedding("Alice", rec.generate_embedding(make_live_face()))

        assert rec.recognize(make_live_face(), store).identity == "Alice"
        with pytest.raises(RecognitionError):
            rec.recognize(make_flat_face(), store)
