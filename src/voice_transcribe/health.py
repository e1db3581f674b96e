import logging
from dataclasses import dataclass

from websockets.exceptions import InvalidURI
from websockets.uri import parse_uri

from voice_transcribe.config import TranscribeConfig

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


def run_startup_checks(config: TranscribeConfig) -> list[HealthCheckResult]:
    results = [
        _check_audio_device(config),
        _check_api_key(config),
        _check_websocket_uri(config),
        _check_frame_limits(config),
    ]

    passed = sum(1 for r in results if r.passed)

    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    critical_checks = {"audio_device", "api_key", "websocket_uri"}
    return any(not r.passed and r.name in critical_checks for r in results)


def _check_audio_device(config: TranscribeConfig) -> HealthCheckResult:
    name = "audio_device"
    try:
        import sounddevice as sd
    except OSError as exc:
        return HealthCheckResult(name=name, passed=False, detail=f"PortAudio unavailable: {exc}")

    device_name = config.capture_device
    try:
        if device_name:
            for dev in sd.query_devices():
                if device_name.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
                    return HealthCheckResult(name=name, passed=True, detail=f"Device '{device_name}' found")
        default = sd.query_devices(kind="input")
    except (sd.PortAudioError, ValueError):
        return HealthCheckResult(name=name, passed=False, detail="No input devices available")

    if device_name:
        detail = f"'{device_name}' not in PortAudio (will use PIPEWIRE_NODE), default input: {default['name']}"
    else:
        detail = f"Default input: {default['name']} ({default['default_samplerate']:.0f} Hz)"
    return HealthCheckResult(name=name, passed=True, detail=detail)


def _check_api_key(config: TranscribeConfig) -> HealthCheckResult:
    name = "api_key"
    if config.resolve_api_key():
        return HealthCheckResult(name=name, passed=True, detail="API key loaded")
    return HealthCheckResult(
        name=name,
        passed=False,
        detail=f"Missing ({config.api_key_file or 'not configured'})",
    )


def _check_websocket_uri(config: TranscribeConfig) -> HealthCheckResult:
    name = "websocket_uri"
    try:
        uri = parse_uri(config.websocket_uri)
    except InvalidURI as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))
    scheme = "wss" if uri.secure else "ws"
    return HealthCheckResult(name=name, passed=True, detail=f"{scheme}://{uri.host}:{uri.port}{uri.resource_name}")


def _check_frame_limits(config: TranscribeConfig) -> HealthCheckResult:
    name = "frame_limits"
    block_bytes = config.block_size * 2
    if config.max_output_size < block_bytes:
        return HealthCheckResult(
            name=name,
            passed=False,
            detail=f"max_output_size={config.max_output_size} is below one block ({block_bytes} bytes), frames will exceed it",
        )
    return HealthCheckResult(
        name=name,
        passed=True,
        detail=f"slice={config.time_slice_ms}ms, max_output={config.max_output_size}B, block={config.block_size}",
    )
