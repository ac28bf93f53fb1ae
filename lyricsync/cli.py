"""Command-Line Interface handler for LyricSync."""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from tqdm import tqdm

from .config_loader import ConfigLoader
from .encoder import FFmpegEncoder
from .engine import LyricsEngine
from .exceptions import LyricSyncError, ConfigurationError
from .log_setup import setup_logging
from .models import FONT_FAMILIES, OverlayStyle, RESOLUTIONS
from .render_pipeline import RenderPipeline
from .serializer import (
    LyricsMetadata,
    read_timeline_file,
    write_interchange_file,
    write_structured_file,
)
from .utils import ensure_dir_exists, suggested_filename

logger = logging.getLogger(__name__)


class CLIHandler:
    """Parses arguments and dispatches the LyricSync commands."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        common = argparse.ArgumentParser(add_help=False)
        common.add_argument(
            "-c", "--config",
            default=None,
            help="Path to a YAML configuration file. Built-in defaults are used when omitted."
        )
        common.add_argument(
            "--log-level",
            default="INFO",
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            help="Set the logging level for console and file output."
        )

        parser = argparse.ArgumentParser(
            description="LyricSync: generate time-synced lyrics from audio and render lyric videos.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )
        commands = parser.add_subparsers(dest="command", required=True)

        transcribe = commands.add_parser(
            "transcribe", parents=[common],
            help="Transcribe audio into synced lyrics (LRC and/or JSON).",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        )
        transcribe.add_argument("-a", "--audio", required=True, help="Path to the input audio file.")
        transcribe.add_argument("-o", "--output-dir", required=True, help="Directory for the lyric files.")
        transcribe.add_argument("--word-level", action="store_true", help="Keep per-word timing.")
        transcribe.add_argument("--format", default="both", choices=["lrc", "json", "both"], help="Output format(s).")
        transcribe.add_argument("--device", default=None, choices=["cuda", "cpu"],
                                help="Override the processing device specified in config.")
        self._add_metadata_args(transcribe)

        convert = commands.add_parser(
            "convert", parents=[common],
            help="Convert lyrics between the JSON and LRC formats.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        )
        convert.add_argument("-i", "--input", required=True, help="Input lyrics (.json or .lrc).")
        convert.add_argument("-o", "--output", required=True, help="Output lyrics (.json or .lrc).")
        self._add_metadata_args(convert)

        render = commands.add_parser(
            "render", parents=[common],
            help="Render a lyric video from audio and a lyrics file.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        )
        render.add_argument("-a", "--audio", required=True, help="Path to the input audio file.")
        render.add_argument("-l", "--lyrics", required=True, help="Lyrics file (.json or .lrc).")
        render.add_argument("-o", "--output-dir", required=True, help="Directory for the rendered video.")
        render.add_argument("--resolution", default="1080p", choices=sorted(RESOLUTIONS))
        render.add_argument("--background-color", default="#000000")
        render.add_argument("--background-image", default=None)
        render.add_argument("--text-color", default="#ffffff")
        render.add_argument("--font-size", type=int, default=48)
        render.add_argument("--font-family", default="Arial", choices=FONT_FAMILIES)
        render.add_argument("--no-shadow", action="store_true", help="Disable the text shadow.")

        return parser

    @staticmethod
    def _add_metadata_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--title", default=None, help="Song title for the lyric file headers.")
        parser.add_argument("--artist", default=None, help="Artist for the lyric file headers.")
        parser.add_argument("--album", default=None, help="Album for the LRC header.")

    def _load_config(self, args: argparse.Namespace) -> dict:
        log_level = getattr(logging, args.log_level.upper(), logging.INFO)
        setup_logging(log_level=log_level, log_dir='logs', log_file='lyricsync_init.log')

        config = ConfigLoader().load_config(args.config)

        setup_logging(log_level=log_level, log_dir=config.get('log_dir', 'logs'),
                      log_file=config.get('log_file', 'lyricsync.log'))
        logger.info("Logging re-configured with settings from config file.")

        if getattr(args, "device", None):
            logger.info(f"Overriding device from config with CLI argument: {args.device}")
            config['device'] = args.device
        return config

    @staticmethod
    def _metadata(config: dict, args: argparse.Namespace) -> LyricsMetadata:
        return LyricsMetadata.from_config(config, title=args.title, artist=args.artist, album=args.album)

    def _transcribe(self, config: dict, args: argparse.Namespace) -> None:
        if not os.path.isfile(args.audio):
            raise FileNotFoundError(f"Input audio file not found or is not a file: {args.audio}")
        ensure_dir_exists(args.output_dir)

        engine = LyricsEngine.from_config(config)
        outcome = asyncio.run(engine.generate(args.audio, word_level=args.word_level))
        timeline = outcome.unwrap()
        if len(timeline) == 0:
            logger.warning("No lyrics were recognized; add lines manually and use 'convert' or 'render'.")

        metadata = self._metadata(config, args)
        if args.format in ("lrc", "both"):
            path = os.path.join(args.output_dir, suggested_filename(args.audio, "lrc"))
            write_interchange_file(timeline, path, metadata)
            print(path)
        if args.format in ("json", "both"):
            path = os.path.join(args.output_dir, suggested_filename(args.audio, "json"))
            write_structured_file(timeline, path, metadata)
            print(path)

    def _convert(self, config: dict, args: argparse.Namespace) -> None:
        timeline = read_timeline_file(args.input)
        metadata = self._metadata(config, args)
        ext = os.path.splitext(args.output)[1].lower()
        if ext == ".lrc":
            write_interchange_file(timeline, args.output, metadata)
        elif ext == ".json":
            write_structured_file(timeline, args.output, metadata)
        else:
            raise ConfigurationError(f"Unsupported output type '{ext}'. Use .json or .lrc.")
        print(args.output)

    def _render(self, config: dict, args: argparse.Namespace) -> None:
        if not os.path.isfile(args.audio):
            raise FileNotFoundError(f"Input audio file not found or is not a file: {args.audio}")
        timeline = read_timeline_file(args.lyrics)
        try:
            style = OverlayStyle(
                background_color=args.background_color,
                background_image=args.background_image,
                text_color=args.text_color,
                font_size=args.font_size,
                font_family=args.font_family,
                shadow_enabled=not args.no_shadow,
                resolution=args.resolution,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid style: {e}") from e
        ensure_dir_exists(args.output_dir)

        encoder = FFmpegEncoder(
            ffmpeg_path=config.get('ffmpeg_path'),
            ffprobe_path=config.get('ffprobe_path'),
            temp_dir=config.get('temp_dir'),
        )
        pipeline = RenderPipeline.from_config(config, encoder)
        with tqdm(total=100, desc="Rendering", unit="%") as bar:
            def on_progress(percent: int) -> None:
                bar.update(percent - bar.n)

            try:
                artifact = asyncio.run(pipeline.export(args.audio, timeline, style, progress=on_progress))
            finally:
                pipeline.cleanup()

        output_path = os.path.join(args.output_dir, artifact.filename)
        with open(output_path, "wb") as f:
            f.write(artifact.data)
        logger.info(f"Video saved to: {output_path}")
        print(output_path)

    def run(self, argv: Optional[list] = None) -> None:
        """Parses arguments, sets up logging, loads config, and runs the chosen command."""
        args = self.parser.parse_args(argv)

        try:
            config = self._load_config(args)
        except (ConfigurationError, FileNotFoundError) as e:
            logger.critical(f"Failed to load configuration from {args.config}: {e}")
            sys.exit(1)

        handlers = {"transcribe": self._transcribe, "convert": self._convert, "render": self._render}
        try:
            handlers[args.command](config, args)
            logger.info("LyricSync finished successfully.")
            sys.exit(0)
        except (LyricSyncError, FileNotFoundError, ValueError) as e:
            logger.error(f"A LyricSync error occurred: {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            logger.warning("Process interrupted by user (Ctrl+C). Exiting.")
            sys.exit(1)
        except Exception as e:
            logger.critical(f"An unexpected critical error occurred at the top level: {e}", exc_info=True)
            sys.exit(2)


def main() -> None:
    CLIHandler().run()
