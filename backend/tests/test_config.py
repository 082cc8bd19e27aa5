"""
Tests for runtime configuration updates.
"""

from config import RuntimeConfig, clamp


class TestRuntimeConfig:

    def test_update_valid_value(self):
        config = RuntimeConfig()
        result = config.update(rag_threshold=0.25, stream_delay_ms=20)

        assert result == {"updated": ["rag_threshold", "stream_delay_ms"], "ignored": []}
        assert config.rag_threshold == 0.25
        assert config.stream_delay_ms == 20

    def test_out_of_range_ignored(self):
        config = RuntimeConfig()
        original = config.temperature
        result = config.update(temperature=5.0)

        assert result == {"updated": [], "ignored": ["temperature"]}
        assert config.temperature == original

    def test_bool_not_accepted_for_numeric(self):
        config = RuntimeConfig()
        assert config.update(rag_top_k=True)["ignored"] == ["rag_top_k"]

    def test_unknown_and_private_keys_ignored(self):
        config = RuntimeConfig()
        result = config.update(nonsense=1, _lock=None)
        assert result["ignored"] == ["nonsense", "_lock"]

    def test_to_dict_hides_secrets_and_internals(self):
        config = RuntimeConfig()
        config.openai_api_key = "sk-secret"
        exported = config.to_dict()

        assert "openai_api_key" not in exported
        assert not any(key.startswith("_") for key in exported)
        assert exported["model_chat"] == config.model_chat

    def test_chunking_is_clamped(self):
        config = RuntimeConfig()
        config.embed_chunk_size = 5000
        config.embed_chunk_overlap = 900
        assert config.chunking() == (1200, 600)

    def test_clamp(self):
        assert clamp(5, 1, 3) == 3
        assert clamp(-1, 0, 3) == 0
        assert clamp(2, 0, 3) == 2
