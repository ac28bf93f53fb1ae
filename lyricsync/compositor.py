"""Builds the linear chain of time-gated drawtext stages for the lyric overlay."""

import ffmpeg
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .models import LyricLine, OverlayStyle, RESOLUTIONS
from .timeline import Timeline
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

BACKDROP_LABEL = "bg"
SHADOW_OPTIONS = {"shadowcolor": "black", "shadowx": 2, "shadowy": 2}


def canvas_size(resolution: str) -> Tuple[int, int]:
    """Pixel dimensions for a supported resolution name."""
    try:
        return RESOLUTIONS[resolution]
    except KeyError:
        raise ValidationError(f"Unsupported resolution '{resolution}'. Choose one of {sorted(RESOLUTIONS)}.") from None


def ffmpeg_color(value: str) -> str:
    """#rrggbb as ffmpeg's 0xRRGGBB; color names pass through."""
    return "0x" + value[1:] if value.startswith("#") else value


def enable_window(start: float, end: float) -> str:
    # between() includes both ends
    return f"between(t,{start:.3f},{end:.3f})"


@dataclass(frozen=True)
class DrawStage:
    """
    One drawtext filter in the overlay chain.

    options holds the raw drawtext arguments (text unescaped); ffmpeg-python
    escapes them for the drawtext, option and filtergraph levels when the
    graph is compiled. The labels describe the wiring: stage i reads the pad
    stage i-1 writes.
    """
    index: int
    line: LyricLine
    input_label: str
    output_label: str
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def start_time(self) -> float:
        return self.line.start_time

    @property
    def end_time(self) -> float:
        return self.line.end_time

    def enabled_at(self, t: float) -> bool:
        """Mirrors ffmpeg's between(t,start,end), which includes both ends."""
        return self.line.start_time <= t <= self.line.end_time

    def apply(self, stream):
        return stream.drawtext(**self.options)


class OverlayCompositor:
    """
    Turns a timeline and style into a linear chain of drawtext stages.

    Stage 0 reads the backdrop; stage i reads stage i-1. Every stage draws
    its line centered in the frame and is enabled only while the playback
    clock is inside the line's closed [start, end] interval.
    """

    def __init__(self, font_files: Optional[Dict[str, str]] = None):
        self.font_files = font_files or {}

    def _font_options(self, family: str) -> Dict[str, str]:
        path = self.font_files.get(family)
        if path and os.path.isfile(path):
            return {"fontfile": path}
        if path:
            logger.debug(f"Font file for '{family}' not found at {path}; using fontconfig lookup.")
        return {"font": family}

    def draw_options(self, line: LyricLine, style: OverlayStyle) -> Dict[str, Any]:
        options = dict(self._font_options(style.font_family))
        options.update(
            text=line.text,
            fontsize=int(style.font_size),
            fontcolor=ffmpeg_color(style.text_color),
            x="(w-text_w)/2",
            y="(h-text_h)/2",
            enable=enable_window(line.start_time, line.end_time),
        )
        if style.shadow_enabled:
            options.update(SHADOW_OPTIONS)
        return options

    def build_chain(self, timeline: Timeline, style: OverlayStyle) -> List[DrawStage]:
        """One stage per timeline line, in timeline order."""
        canvas_size(style.resolution)
        chain: List[DrawStage] = []
        input_label = BACKDROP_LABEL
        for index, line in enumerate(timeline):
            output_label = f"v{index}"
            chain.append(DrawStage(
                index=index,
                line=line,
                input_label=input_label,
                output_label=output_label,
                options=self.draw_options(line, style),
            ))
            input_label = output_label
        logger.info(f"Built overlay chain with {len(chain)} stages at {style.resolution}.")
        return chain

    @staticmethod
    def output_label(chain: List[DrawStage]) -> str:
        """The pad carrying the composited frames; the backdrop itself when the chain is empty."""
        return chain[-1].output_label if chain else BACKDROP_LABEL

    @staticmethod
    def compose(chain: List[DrawStage], backdrop):
        """
        Applies the chain to a backdrop video stream.

        An empty chain returns the backdrop unchanged.
        """
        stream = backdrop
        for stage in chain:
            stream = stage.apply(stream)
        return stream

    @staticmethod
    def backdrop(style: OverlayStyle, duration: int, frame_rate: int, image_path: Optional[str] = None):
        """A video stream of the canvas size: the looped image scaled to cover it, or a solid color."""
        width, height = canvas_size(style.resolution)
        if image_path:
            image = ffmpeg.input(image_path, loop=1, framerate=frame_rate, t=duration)
            return (
                image.video
                .filter("scale", width, height, force_original_aspect_ratio="increase")
                .filter("crop", width, height)
                .filter("setsar", 1)
            )
        source = f"color=c={ffmpeg_color(style.background_color)}:s={width}x{height}:d={duration}:r={frame_rate}"
        return ffmpeg.input(source, f="lavfi").video
