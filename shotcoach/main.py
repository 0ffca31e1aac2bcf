"""Shotcoach entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging

from shotcoach.logging.handler import WebSocketLogHandler

log = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Stability-triggered photography coach")
    p.add_argument("--mock", action="store_true", help="Use a synthetic camera (no hardware)")
    p.add_argument("--camera", type=int, default=None, help="OpenCV camera index")
    p.add_argument("--http-port", type=int, default=None, help="HTTP server port")
    p.add_argument("--speaker-device", default=None, help="ALSA speaker device")
    p.add_argument("--no-greeting", action="store_true", help="Skip the spoken greeting")
    p.add_argument("--config", default=None, help="YAML config file path")
    p.add_argument("--log-level", default="INFO", help="Log level")
    return p.parse_args()


async def async_main(args: argparse.Namespace) -> None:
    import uvicorn

    from shotcoach.api.http_server import create_app
    from shotcoach.config import load_config
    from shotcoach.devices.audio_sink import AplaySink
    from shotcoach.devices.location import GoogleMapsLocator
    from shotcoach.devices.openai_client import OpenAIClient
    from shotcoach.runtime import CoachRuntime

    cfg = load_config(args.config)

    # Apply CLI overrides
    if args.mock:
        cfg.mock = True
    if args.camera is not None:
        cfg.camera.camera_id = args.camera
    if args.http_port is not None:
        cfg.network.http_port = args.http_port
    if args.speaker_device:
        cfg.audio.speaker_device = args.speaker_device
    if args.no_greeting:
        cfg.coach.greeting_text = ""
    cfg.validate()

    if cfg.mock:
        from shotcoach.devices.mock_camera import MockCamera

        frames = MockCamera()
        log.info("using mock camera")
    else:
        from shotcoach.devices.camera import OpenCVCamera

        frames = OpenCVCamera(
            camera_id=cfg.camera.camera_id,
            capture_size=(cfg.camera.capture_width, cfg.camera.capture_height),
        )

    openai = OpenAIClient(
        cfg.openai.api_key,
        base_url=cfg.openai.base_url,
        vision_model=cfg.openai.vision_model,
        max_tokens=cfg.openai.max_tokens,
        tts_model=cfg.openai.tts_model,
        voice=cfg.openai.voice,
        timeout_s=cfg.openai.timeout_s,
    )
    locator = None
    if cfg.maps.enabled:
        locator = GoogleMapsLocator(
            cfg.maps.api_key,
            base_url=cfg.maps.base_url,
            radius_m=cfg.maps.radius_m,
            max_places=cfg.maps.max_places,
        )

    runtime = CoachRuntime(
        cfg,
        frames=frames,
        vision=openai,
        speech=openai,
        sink=AplaySink(cfg.audio.speaker_device, cfg.audio.sample_rate),
        locator=locator,
    )

    app = create_app(runtime)
    http_server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=cfg.network.host,
            port=cfg.network.http_port,
            log_level="warning",
        )
    )

    try:
        await openai.start()
        if locator:
            await locator.start()

        log.info(
            "shotcoach running (mock=%s, model=%s, http=%s:%d)",
            cfg.mock,
            cfg.openai.vision_model,
            cfg.network.host,
            cfg.network.http_port,
        )
        await asyncio.gather(runtime.run(), http_server.serve())
    finally:
        log.info("shutting down...")
        http_server.should_exit = True
        await runtime.stop()
        await openai.close()
        if locator:
            await locator.close()
        close = getattr(frames, "close", None)
        if close is not None:
            await close()


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-5s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger().addHandler(WebSocketLogHandler())
    try:
        asyncio.run(async_main(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
