"""Orchestrates rendering a lyric overlay video from audio and a timeline."""

import ffmpeg
import logging
import math
import os
import time
from typing import Callable, Optional

from .compositor import OverlayCompositor
from .encoder import Encoder
from .exceptions import (
    InitializationError,
    InitializationKind,
    LyricSyncError,
    RenderError,
    RenderKind,
)
from .models import Outcome, OverlayStyle, RenderArtifact
from .tasks import LoadGuard, SingleFlight, run_blocking
from .timeline import Timeline
from .utils import suggested_filename

logger = logging.getLogger(__name__)

DEFAULT_BACKDROP_SECONDS = 300
BACKDROP_FRAME_RATE = 25
OUTPUT_NAME = "output.mp4"

ProgressCallback = Callable[[int], None]


class ProgressReporter:
    """Reports a non-decreasing percentage that only reaches 100 via complete()."""

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.value = 0

    def _emit(self) -> None:
        if self.callback is not None:
            self.callback(self.value)

    def report(self, percent: int) -> None:
        percent = min(int(percent), 99)
        if percent > self.value:
            self.value = percent
            self._emit()

    def complete(self) -> None:
        self.value = 100
        self._emit()


class RenderPipeline:
    """
    Manages the end-to-end export of a lyric video.

    One export may run at a time per instance. The encoder is loaded at most
    once. Partial output stays in the encoder's working directory until the
    caller invokes cleanup(); a failed export can simply be called again.
    """

    def __init__(
        self,
        encoder: Encoder,
        compositor: Optional[OverlayCompositor] = None,
        video_codec: str = "libx264",
        audio_codec: str = "aac",
        pixel_format: str = "yuv420p",
        load_timeout: Optional[float] = 60.0,
        encode_timeout: Optional[float] = 900.0,
    ):
        self.encoder = encoder
        self.compositor = compositor or OverlayCompositor()
        self.video_codec = video_codec
        self.audio_codec = audio_codec
        self.pixel_format = pixel_format
        self.encode_timeout = encode_timeout
        self._ready = LoadGuard(
            "encoder",
            timeout=load_timeout,
            on_timeout=lambda: InitializationError(
                f"Encoder did not become ready within {load_timeout}s", InitializationKind.TIMEOUT),
        )
        self._export_flight = SingleFlight("video export")

    @classmethod
    def from_config(cls, config: dict, encoder: Encoder) -> "RenderPipeline":
        return cls(
            encoder=encoder,
            compositor=OverlayCompositor(font_files=config.get("font_files")),
            video_codec=config.get("video_codec", "libx264"),
            audio_codec=config.get("audio_codec", "aac"),
            pixel_format=config.get("pixel_format", "yuv420p"),
            load_timeout=config.get("load_timeout_seconds"),
            encode_timeout=config.get("encode_timeout_seconds"),
        )

    @property
    def is_loaded(self) -> bool:
        return self._ready.is_loaded

    @property
    def is_loading(self) -> bool:
        return self._ready.is_loading

    async def ensure_ready(self) -> None:
        """Loads the encoder once; concurrent callers share the same load."""
        await self._ready.ensure(self.encoder.load)

    def _encode_timeout_error(self) -> RenderError:
        return RenderError(f"Encoding timed out after {self.encode_timeout}s", RenderKind.ENCODE_FAILED)

    def build_output(self, staged_audio: str, timeline: Timeline, style: OverlayStyle,
                     duration: int, staged_image: Optional[str] = None, output_path: str = OUTPUT_NAME):
        """The ffmpeg-python output: backdrop, overlay chain, then the mux with the original audio."""
        chain = self.compositor.build_chain(timeline, style)
        backdrop = self.compositor.backdrop(style, duration, BACKDROP_FRAME_RATE, staged_image)
        video = self.compositor.compose(chain, backdrop)
        audio = ffmpeg.input(staged_audio).audio
        return (
            ffmpeg.output(
                video, audio, output_path,
                vcodec=self.video_codec,
                acodec=self.audio_codec,
                pix_fmt=self.pixel_format,
                shortest=None,
            )
            .overwrite_output()
        )

    async def export(self, audio_path: str, timeline: Timeline, style: OverlayStyle,
                     progress: Optional[ProgressCallback] = None) -> RenderArtifact:
        """
        Renders the timeline over a backdrop and muxes it with the audio.

        Args:
            audio_path: Path to the source audio.
            timeline: The lyric lines to burn in. May be empty.
            style: Overlay styling and resolution.
            progress: Optional callback receiving integer percentages.

        Returns:
            The encoded video and its suggested filename.

        Raises:
            EngineBusyError: If an export is already running on this pipeline.
            InitializationError: If the encoder load times out.
            RenderError: If the encoder cannot start or any encoding step fails.
        """
        with self._export_flight:
            reporter = ProgressReporter(progress)
            started = time.time()
            logger.info(f"--- Starting video export for: {audio_path} ({len(timeline)} lines, {style.resolution}) ---")
            try:
                logger.info("Step 1: Preparing encoder...")
                await self.ensure_ready()
                reporter.report(10)

                logger.info("Step 2: Staging audio...")
                ext = os.path.splitext(audio_path)[1] or ".audio"
                staged_audio = await run_blocking(self.encoder.stage, audio_path, f"input{ext}")
                staged_image = None
                if style.background_image:
                    image_ext = os.path.splitext(style.background_image)[1] or ".img"
                    staged_image = await run_blocking(self.encoder.stage, style.background_image, f"background{image_ext}")
                reporter.report(20)

                logger.info("Step 3: Synthesizing backdrop...")
                audio_duration = await run_blocking(self.encoder.media_duration, staged_audio)
                duration = self._backdrop_seconds(audio_duration, timeline)
                reporter.report(30)

                logger.info("Step 4: Building lyric overlay chain...")
                output_path = self.encoder.path_for(OUTPUT_NAME)
                output = self.build_output(staged_audio, timeline, style, duration, staged_image, output_path)
                reporter.report(40)

                logger.info("Step 5: Encoding video...")
                await run_blocking(self.encoder.run, output, timeout=self.encode_timeout,
                                   on_timeout=self._encode_timeout_error,
                                   on_abandon=self._export_flight.abandon)
                reporter.report(95)

                logger.info("Step 6: Collecting output...")
                data = await run_blocking(self.encoder.read, output_path)
                if not data:
                    raise RenderError("Encoder produced an empty file.", RenderKind.ENCODE_FAILED)
            except LyricSyncError as e:
                logger.error(f"Video export failed at {reporter.value}%: {e}", exc_info=False)
                raise
            except Exception as e:
                logger.critical(f"An unexpected error occurred during video export: {e}", exc_info=True)
                raise RenderError(f"An unexpected error occurred: {e}", RenderKind.ENCODE_FAILED) from e

            reporter.complete()
            logger.info(f"--- Video export completed in {time.time() - started:.2f} seconds ({len(data)} bytes) ---")
            return RenderArtifact(data=data, filename=suggested_filename(audio_path, "video"))

    async def try_export(self, audio_path: str, timeline: Timeline, style: OverlayStyle,
                         progress: Optional[ProgressCallback] = None) -> Outcome[RenderArtifact]:
        """Same as export(), but failures come back as an Outcome instead of raising."""
        try:
            return Outcome.success(await self.export(audio_path, timeline, style, progress))
        except LyricSyncError as e:
            return Outcome.failure(e)

    @staticmethod
    def _backdrop_seconds(audio_duration: Optional[float], timeline: Timeline) -> int:
        """Backdrop length covering the audio; -shortest trims the excess."""
        if audio_duration:
            return int(math.ceil(audio_duration)) + 1
        if len(timeline):
            logger.warning("Audio duration unknown; sizing backdrop from the timeline.")
            return int(math.ceil(timeline.duration)) + 1
        logger.warning(f"Audio duration unknown; using a {DEFAULT_BACKDROP_SECONDS}s backdrop.")
        return DEFAULT_BACKDROP_SECONDS

    def cleanup(self) -> None:
        """Removes the encoder's working set. The next export reloads the encoder."""
        self.encoder.cleanup()
        self._ready.reset()
