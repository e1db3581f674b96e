from voice_transcribe.config import TranscribeConfig


class TestTranscribeConfig:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("VOICE_TRANSCRIBE_MODEL", raising=False)
        config = TranscribeConfig(_env_file=None)
        assert config.websocket_uri == "wss://api.soniox.com/transcribe-websocket"
        assert config.time_slice_ms == 120
        assert config.max_output_size == 60000
        assert config.model == ""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("VOICE_TRANSCRIBE_MODEL", "en_v2")
        monkeypatch.setenv("VOICE_TRANSCRIBE_MAX_NUM_SPEAKERS", "4")
        monkeypatch.setenv("VOICE_TRANSCRIBE_CAND_SPEAKER_NAMES", '["alice", "bob"]')
        config = TranscribeConfig(_env_file=None)
        assert config.model == "en_v2"
        assert config.max_num_speakers == 4
        assert config.cand_speaker_names == ["alice", "bob"]

    def test_api_key_from_file(self, tmp_path):
        key_file = tmp_path / "key"
        key_file.write_text("secret-key\n")
        config = TranscribeConfig(_env_file=None, api_key_file=str(key_file))
        assert config.resolve_api_key() == "secret-key"

    def test_inline_api_key_wins(self, tmp_path):
        key_file = tmp_path / "key"
        key_file.write_text("from-file")
        config = TranscribeConfig(_env_file=None, api_key="inline", api_key_file=str(key_file))
        assert config.resolve_api_key() == "inline"

    def test_missing_secret_file(self):
        config = TranscribeConfig(_env_file=None)
        assert config.read_secret("/nonexistent/key") == ""
        assert config.read_secret("") == ""
