"""Tests for similarity and distance metrics."""

import pytest


class TestPearson:
    def test_perfect_positive(self):
        from recsys.core.similarity import pearson_correlation

        assert pearson_correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)

    def test_perfect_negative(self):
        from recsys.core.similarity import pearson_correlation

        assert pearson_correlation([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)

    def test_constant_vector_is_zero(self):
        from recsys.core.similarity import pearson_correlation

        assert pearson_correlation([0.5, 0.5], [0.1, 0.9]) == 0.0

    def test_mismatched_lengths(self):
        from recsys.core.similarity import pearson_correlation

        assert pearson_correlation([1, 2], [1]) == 0.0


class TestCosineAndJaccard:
    def test_cosine_identical(self):
        from recsys.core.similarity import cosine_similarity

        assert cosine_similarity([0.3, 0.4], [0.3, 0.4]) == pytest.approx(1.0)

    def test_cosine_zero_vector(self):
        from recsys.core.similarity import cosine_similarity

        assert cosine_similarity([0, 0], [1, 1]) == 0.0

    def test_jaccard(self):
        from recsys.core.similarity import jaccard_index

        assert jaccard_index({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
        assert jaccard_index(set(), set()) == 0.0


class TestRatingMetrics:
    def test_zero_shared_items(self):
        from recsys.core.similarity import rating_metrics

        metrics = rating_metrics({"a": 0.5}, {"b": 0.5})
        assert metrics.common_items == 0
        assert metrics.pearson_correlation == 0.0
        assert metrics.cosine_similarity == 0.0
        assert metrics.euclidean_distance == 1.0

    def test_shared_items(self):
        from recsys.core.similarity import rating_metrics

        metrics = rating_metrics({"a": 0.2, "b": 0.8, "c": 0.1}, {"a": 0.2, "b": 0.8})
        assert metrics.common_items == 2
        assert metrics.cosine_similarity == pytest.approx(1.0)
        assert metrics.jaccard_index == pytest.approx(2 / 3)
        assert metrics.euclidean_distance == pytest.approx(0.0)


class TestCompositeAndConfidence:
    def test_combined_score_clamped(self):
        from recsys.core.similarity import SimilarityFactors, SimilarityMetrics, combine_similarity

        metrics = SimilarityMetrics(
            pearson_correlation=1.0, cosine_similarity=1.0, jaccard_index=1.0, common_items=3
        )
        factors = SimilarityFactors(category_overlap=1.0, tag_similarity=1.0, behavior_similarity=1.0)
        assert combine_similarity(metrics, factors) == pytest.approx(1.0)

    def test_negative_correlation_floors_at_zero(self):
        from recsys.core.similarity import SimilarityFactors, SimilarityMetrics, combine_similarity

        metrics = SimilarityMetrics(pearson_correlation=-1.0, common_items=2)
        assert combine_similarity(metrics, SimilarityFactors()) == 0.0

    def test_confidence_zero_without_overlap(self):
        from recsys.core.similarity import similarity_confidence

        assert similarity_confidence(0, 5, 5) == 0.0
        assert similarity_confidence(3, 0, 0) == 0.0

    def test_confidence_grows_with_data(self):
        from recsys.core.similarity import similarity_confidence

        sparse = similarity_confidence(2, 2, 2)
        dense = similarity_confidence(10, 10, 10)
        assert sparse < dense
        assert dense == pytest.approx(1.0)

    def test_weight_overlap(self):
        from recsys.core.similarity import weight_overlap

        assert weight_overlap({"tech": 0.8}, {"tech": 0.6, "news": 0.5}) == pytest.approx(0.4)
        assert weight_overlap({}, {}) == 0.0
