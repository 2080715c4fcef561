import os
import stat
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

# Add project root to path for imports
project_dir = Path(__file__).parent.parent
if str(project_dir) not in sys.path:
    sys.path.insert(0, str(project_dir))

from modules.transcoding import (
    InMemorySettings,
    MediaFile,
    Player,
    Transcoding,
    TranscodingConfig,
    TranscodingRepository,
    TranscodingService,
)

posix_only = pytest.mark.skipif(os.name == "nt", reason="fake transcoders are /bin/sh scripts")


def write_script(directory: Path, name: str, body: str) -> Path:
    """Write an executable shell script acting as a transcoder"""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def transcode_dir(tmp_path):
    directory = tmp_path / "transcode"
    directory.mkdir()
    return directory


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=8, thread_name_prefix="TestTranscode")
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def config(transcode_dir):
    return TranscodingConfig(transcode_dir=str(transcode_dir), stop_timeout=2.0, dummy_delay=0)


@pytest.fixture
def mp3_transcoding():
    return Transcoding(1, "mp3 audio", "mp3 flac", "mp3", "ffmpeg -i %s -b:a %bk -f mp3 -")


@pytest.fixture
def repository(mp3_transcoding):
    return TranscodingRepository([mp3_transcoding])


@pytest.fixture
def settings():
    return InMemorySettings()


@pytest.fixture
def service(config, repository, settings, executor):
    return TranscodingService(config, repository, settings, executor)


@pytest.fixture
def player():
    return Player(id="p1", name="web", username="alice")


@pytest.fixture
def mp3_file(tmp_path):
    path = tmp_path / "song.mp3"
    path.write_bytes(b"ID3" + b"\x00" * 1021)
    return MediaFile(
        path=str(path),
        format="mp3",
        bit_rate=320,
        duration_seconds=200,
        title="Song",
        album_name="Album",
        artist="Artist",
    )
