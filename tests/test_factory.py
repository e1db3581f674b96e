import json

import pytest

from conftest import FakeMediaDevices, FakeTransportFactory, settle
from voice_transcribe.config import TranscribeConfig
from voice_transcribe.domain.session import UsageError
from voice_transcribe.factory import create_session


@pytest.fixture
def config():
    return TranscribeConfig(
        _env_file=None,
        api_key="factory-key",
        websocket_uri="ws://localhost:1234",
        include_nonfinal=True,
        enable_dictation=True,
        model="en_v2",
        time_slice_ms=0,
    )


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_session_configured_from_config(self, config):
        transports = FakeTransportFactory()
        session = create_session(config, media_devices=FakeMediaDevices(), transport_factory=transports)
        try:
            session.start()
            await settle()
            transport = transports.last
            transport.simulate_open()
        finally:
            session.cancel()

        assert transport.uri == "ws://localhost:1234"
        handshake = json.loads(transport.sent[0])
        assert handshake["api_key"] == "factory-key"
        assert handshake["include_nonfinal"] is True
        assert handshake["enable_dictation"] is True
        assert handshake["model"] == "en_v2"

    @pytest.mark.asyncio
    async def test_missing_api_key_fails_at_start(self):
        config = TranscribeConfig(_env_file=None)
        session = create_session(config, media_devices=FakeMediaDevices(), transport_factory=FakeTransportFactory())
        with pytest.raises(UsageError):
            session.start()
