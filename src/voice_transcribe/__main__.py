import argparse
import asyncio
import logging
import signal
import sys

from voice_transcribe.config import TranscribeConfig
from voice_transcribe.log_format import ColoredFormatter


def main() -> None:
    parser = argparse.ArgumentParser(description="Live speech transcription from the microphone")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--model", help="Transcription model name")
    parser.add_argument("--uri", help="Transcription service websocket URI")
    parser.add_argument("--final-only", action="store_true", help="Do not request non-final words")
    parser.add_argument("--skip-checks", action="store_true", help="Skip startup health checks")

    args = parser.parse_args()

    config = TranscribeConfig()
    if args.model:
        config.model = args.model
    if args.uri:
        config.websocket_uri = args.uri
    if args.final_only:
        config.include_nonfinal = False

    _setup_logging(args.verbose, config.log_file)

    sys.exit(asyncio.run(_run_session(config, skip_checks=args.skip_checks)))


def _setup_logging(verbose: bool, log_file: str) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )
    root = logging.getLogger()
    if sys.stderr.isatty():
        for handler in root.handlers:
            handler.setFormatter(ColoredFormatter(datefmt="%H:%M:%S"))
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
        root.addHandler(file_handler)

    if verbose:
        logging.getLogger("websockets").setLevel(logging.INFO)


async def _run_session(config: TranscribeConfig, skip_checks: bool = False) -> int:
    from voice_transcribe.domain.session import UsageError
    from voice_transcribe.factory import create_session
    from voice_transcribe.health import has_critical_failures, run_startup_checks

    if not skip_checks:
        results = run_startup_checks(config)
        if has_critical_failures(results):
            logging.error("Critical health check failures, aborting startup")
            return 1

    session = create_session(config)
    done = asyncio.Event()
    failure: list[str] = []

    def on_started() -> None:
        logging.info("Listening, press Ctrl+C to finish")

    def on_partial_result(update) -> None:
        text = "".join(word.text for word in update.final_words).strip()
        if text:
            logging.info("Final: %s", text)

    def on_finished() -> None:
        done.set()

    def on_error(status: str, message: str) -> None:
        failure.append(f"{status}: {message}")
        done.set()

    session.set_on_started(on_started)
    session.set_on_partial_result(on_partial_result)
    session.set_on_finished(on_finished)
    session.set_on_error(on_error)

    stop_requested = False

    def handle_signal() -> None:
        nonlocal stop_requested
        if stop_requested:
            logging.warning("Canceling session")
            session.cancel()
            done.set()
            return
        stop_requested = True
        logging.info("Finishing, waiting for final results...")
        session.stop()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    try:
        session.start()
        await done.wait()
    except UsageError as exc:
        print(f"Transcription failed: {exc}", file=sys.stderr)
        return 1
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    transcript = session.get_result_copy().text.strip()
    if transcript:
        print(transcript)

    if failure:
        print(f"Transcription failed: {failure[0]}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    main()
