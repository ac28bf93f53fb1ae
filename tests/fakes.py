"""Test doubles for the recognizer and the encoder."""

import os
import threading
from typing import List, Optional

from lyricsync.encoder import Encoder
from lyricsync.exceptions import RenderError, RenderKind
from lyricsync.models import TranscriptionResult
from lyricsync.transcriber import Transcriber


class FakeTranscriber(Transcriber):
    """Returns a canned result; counts loads and can be made slow or failing."""

    def __init__(self, result: Optional[TranscriptionResult] = None, load_delay: float = 0.0,
                 transcribe_delay: float = 0.0, load_error: Optional[Exception] = None):
        self.result = result or TranscriptionResult(language="en")
        self.load_delay = load_delay
        self.transcribe_delay = transcribe_delay
        self.load_error = load_error
        self.load_calls = 0
        self.active_loads = 0
        self.max_active_loads = 0
        self.transcribe_calls = 0
        self._lock = threading.Lock()

    def load(self) -> None:
        with self._lock:
            self.load_calls += 1
            self.active_loads += 1
            self.max_active_loads = max(self.max_active_loads, self.active_loads)
        try:
            if self.load_delay:
                threading.Event().wait(self.load_delay)
            if self.load_error is not None:
                raise self.load_error
        finally:
            with self._lock:
                self.active_loads -= 1

    def transcribe(self, audio_path: str) -> TranscriptionResult:
        self.transcribe_calls += 1
        if self.transcribe_delay:
            threading.Event().wait(self.transcribe_delay)
        return self.result


class FakeEncoder(Encoder):
    """Compiles the stream it is given and writes a fake video into a temp dir."""

    def __init__(self, work_dir: str, duration: Optional[float] = 8.0, fail_run: bool = False,
                 load_delay: float = 0.0, run_delay: float = 0.0):
        self.work_dir = work_dir
        self.duration = duration
        self.fail_run = fail_run
        self.load_delay = load_delay
        self.run_delay = run_delay
        self.load_calls = 0
        self.run_calls = 0
        self.commands: List[List[str]] = []
        self.cleaned = False

    def load(self) -> None:
        self.load_calls += 1
        if self.load_delay:
            threading.Event().wait(self.load_delay)

    def path_for(self, name: str) -> str:
        return os.path.join(self.work_dir, name)

    def stage(self, source_path: str, name: str) -> str:
        target = self.path_for(name)
        with open(source_path, "rb") as src, open(target, "wb") as dst:
            dst.write(src.read())
        return target

    def media_duration(self, path: str) -> Optional[float]:
        return self.duration

    def run(self, stream) -> None:
        args = self.describe(stream)
        self.commands.append(args)
        self.run_calls += 1
        if self.run_delay:
            threading.Event().wait(self.run_delay)
        if self.fail_run:
            raise RenderError("ffmpeg failed: boom", RenderKind.ENCODE_FAILED)
        output = next(arg for arg in reversed(args) if arg.endswith(".mp4"))
        with open(output, "wb") as f:
            f.write(b"\x00\x00\x00\x18ftypmp42fake-video")

    def read(self, path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def cleanup(self) -> None:
        self.cleaned = True
