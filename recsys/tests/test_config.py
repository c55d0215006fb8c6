"""Tests for configuration loading and validation."""

import pytest


class TestConfigDefaults:
    def test_strategy_mix_sums_to_one(self):
        from recsys.config import EngineConfig

        cfg = EngineConfig()
        assert sum(cfg.strategy_mix.values()) == pytest.approx(1.0)

    def test_score_weights_sum_to_one(self):
        from recsys.config import TrendingConfig

        cfg = TrendingConfig()
        assert sum(cfg.score_weights.values()) == pytest.approx(1.0)

    def test_half_life_from_decay_factor(self):
        from recsys.config import CollaborativeFilterConfig

        cfg = CollaborativeFilterConfig(decay_factor=0.1)
        assert cfg.half_life_days == pytest.approx(6.93, abs=0.01)

    def test_zero_decay_never_halves(self):
        from recsys.config import CollaborativeFilterConfig

        assert CollaborativeFilterConfig(decay_factor=0).half_life_days == float("inf")


class TestConfigValidation:
    def test_strategy_mix_not_summing_to_one_rejected(self):
        from recsys.config import ConfigurationError, EngineConfig

        with pytest.raises(ConfigurationError):
            EngineConfig(
                strategy_mix={
                    "content-based": 0.5,
                    "collaborative": 0.3,
                    "trending": 0.2,
                    "hybrid": 0.1,
                }
            )

    def test_unknown_trending_window_rejected(self):
        from recsys.config import ConfigurationError, EngineConfig

        with pytest.raises(ConfigurationError):
            EngineConfig(trending_window="year")

    def test_score_weight_out_of_range_rejected(self):
        from recsys.config import ConfigurationError, TrendingConfig

        weights = {
            "popularity": 1.5,
            "velocity": -0.5,
            "acceleration": 0.0,
            "freshness": 0.0,
            "quality": 0.0,
            "diversity": 0.0,
            "sustainability": 0.0,
        }
        with pytest.raises(ConfigurationError):
            TrendingConfig(score_weights=weights)

    def test_significance_level_bounds(self):
        from recsys.config import ConfigurationError, TrackerConfig

        with pytest.raises(ConfigurationError):
            TrackerConfig(significance_level=1.0)


class TestConfigFromEnv:
    def test_reads_environment(self, monkeypatch):
        from recsys.config import Config

        monkeypatch.setenv("RECS_SIMILARITY_THRESHOLD", "0.45")
        monkeypatch.setenv("TRENDING_MIN_VIEWS", "25")
        monkeypatch.setenv("AB_SIGNIFICANCE_LEVEL", "0.01")
        monkeypatch.setenv("SCHEDULER_ENABLED", "false")

        cfg = Config.from_env()
        assert cfg.collaborative.min_similarity_threshold == 0.45
        assert cfg.trending.min_views == 25
        assert cfg.tracker.significance_level == 0.01
        assert cfg.scheduler_enabled is False

    def test_invalid_numbers_fall_back_to_defaults(self, monkeypatch):
        from recsys.config import Config

        monkeypatch.setenv("RECS_MAX_SIMILAR_USERS", "lots")
        cfg = Config.from_env()
        assert cfg.collaborative.max_similar_users == 50

    def test_strategy_mix_from_env(self, monkeypatch):
        from recsys.config import Config

        monkeypatch.setenv("RECS_STRATEGY_MIX", "0.25,0.25,0.25,0.25")
        cfg = Config.from_env()
        assert cfg.engine.strategy_mix["trending"] == 0.25

    def test_strategy_mix_wrong_arity(self, monkeypatch):
        from recsys.config import Config, ConfigurationError

        monkeypatch.setenv("RECS_STRATEGY_MIX", "0.5,0.5")
        with pytest.raises(ConfigurationError):
            Config.from_env()

    def test_trending_categories_csv(self, monkeypatch):
        from recsys.config import Config

        monkeypatch.setenv("TRENDING_CATEGORIES", "Technology, Science")
        cfg = Config.from_env()
        assert cfg.trending.categories == ("technology", "science")


class TestLogging:
    def test_structured_line_format(self):
        import logging

        from recsys.logging import StructuredFormatter

        record = logging.LogRecord(
            "recsys.engine", logging.WARNING, __file__, 1, "Cache miss: user=%s", ("u1",), None
        )
        line = StructuredFormatter().format(record)
        timestamp, level, name, message = line.split(" | ")
        assert timestamp.endswith("Z")
        assert level.strip() == "WARNING"
        assert name == "recsys.engine"
        assert message == "Cache miss: user=u1"

    def test_setup_logging_replaces_root_handlers(self):
        import logging

        from recsys.logging import StructuredFormatter, setup_logging

        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging("debug")
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredFormatter)
            assert logging.getLogger("apscheduler").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_context_fields_appended(self):
        import logging

        from recsys.logging import StructuredFormatter

        record = logging.LogRecord(
            "recsys.tracker", logging.WARNING, __file__, 1, "Unknown recommendation", (), None
        )
        record.rec_id = "rec-9"
        line = StructuredFormatter().format(record)
        assert line.endswith("| Unknown recommendation [rec_id=rec-9]")
