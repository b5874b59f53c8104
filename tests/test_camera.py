import io
import shlex
import subprocess

import pytest

from uav_onboard.camera import (
    CameraError,
    MjpegFrameSplitter,
    RpicamMjpegSource,
    RpicamOptions,
    build_command,
    shell_quote,
)


def _tokens(command):
    return shlex.split(command.split(" 2>")[0])


def _jpeg(body):
    return b"\xff\xd8" + body + b"\xff\xd9"


@pytest.mark.parametrize("value", ["abc", "it's", "a b", "''", "x'y'z", ""])
def test_shell_quote_round_trips(value):
    assert shlex.split(shell_quote(value)) == [value]


def test_build_command_defaults():
    tokens = _tokens(build_command(RpicamOptions()))
    assert tokens[0] == "rpicam-vid"
    assert tokens[tokens.index("--codec") + 1] == "mjpeg"
    assert tokens[tokens.index("--width") + 1] == "640"
    assert tokens[tokens.index("--height") + 1] == "480"
    assert tokens[tokens.index("--framerate") + 1] == "15"
    assert tokens[tokens.index("--quality") + 1] == "50"
    assert tokens[-2:] == ["-o", "-"]
    assert "--lens-position" not in tokens
    assert "--gain" not in tokens
    assert "--hflip" not in tokens


def test_build_command_empty_codec_falls_back_to_mjpeg():
    tokens = _tokens(build_command(RpicamOptions(codec="")))
    assert tokens[tokens.index("--codec") + 1] == "mjpeg"


def test_build_command_lens_position_only_in_manual_focus():
    manual = _tokens(build_command(RpicamOptions(autofocus_mode="manual", lens_position=0.67)))
    assert manual[manual.index("--lens-position") + 1] == "0.67"
    auto = _tokens(build_command(RpicamOptions(autofocus_mode="auto", lens_position=0.67)))
    assert "--lens-position" not in auto
    assert auto[auto.index("--autofocus-mode") + 1] == "auto"


def test_build_command_optional_settings():
    options = RpicamOptions(
        shutter_us=2000,
        gain=2.5,
        roi="0.1,0.1,0.5,0.5",
        tuning_file="my tuning.json",
        hflip=True,
        vflip=True,
        rotation=180,
    )
    tokens = _tokens(build_command(options))
    assert tokens[tokens.index("--shutter") + 1] == "2000"
    assert tokens[tokens.index("--gain") + 1] == "2.5"
    assert tokens[tokens.index("--roi") + 1] == "0.1,0.1,0.5,0.5"
    assert tokens[tokens.index("--tuning-file") + 1] == "my tuning.json"
    assert "--hflip" in tokens and "--vflip" in tokens
    assert tokens[tokens.index("--rotation") + 1] == "180"


def test_splitter_returns_single_frame():
    splitter = MjpegFrameSplitter()
    frame = _jpeg(b"payload")
    splitter.feed(frame)
    assert splitter.next_frame() == frame
    assert splitter.next_frame() is None


def test_splitter_discards_leading_junk_and_handles_partial_data():
    splitter = MjpegFrameSplitter()
    frame = _jpeg(b"0123456789")
    splitter.feed(b"junk" + frame[:6])
    assert splitter.next_frame() is None
    splitter.feed(frame[6:])
    assert splitter.next_frame() == frame


def test_splitter_keeps_last_byte_when_no_start_marker():
    splitter = MjpegFrameSplitter()
    splitter.feed(b"abc\xff")
    assert splitter.next_frame() is None
    assert splitter.buffered_size == 1
    splitter.feed(b"\xd8body\xff\xd9")
    assert splitter.next_frame() == _jpeg(b"body")


def test_splitter_yields_frames_in_order():
    splitter = MjpegFrameSplitter()
    first, second = _jpeg(b"one"), _jpeg(b"two")
    splitter.feed(first + second)
    assert splitter.next_frame() == first
    assert splitter.next_frame() == second
    assert splitter.next_frame() is None


def test_splitter_bounds_buffer():
    splitter = MjpegFrameSplitter()
    splitter.feed(b"\xff\xd8" + b"\x00" * (5 * 1024 * 1024))
    assert splitter.buffered_size <= 4 * 1024 * 1024


class _FakeProcess:
    def __init__(self, data):
        self.stdout = io.BytesIO(data)
        self.waited = False

    def wait(self, timeout=None):
        self.waited = True
        return 0

    def terminate(self):
        pass


def test_read_frame_requires_open():
    with pytest.raises(CameraError, match="not open"):
        RpicamMjpegSource().read_frame()


def test_source_reads_frames_until_process_ends(monkeypatch):
    first, second = _jpeg(b"a" * 5000), _jpeg(b"b")
    calls = []
    processes = []

    def fake_popen(command, **kwargs):
        calls.append((command, kwargs))
        process = _FakeProcess(b"noise" + first + second)
        processes.append(process)
        return process

    monkeypatch.setattr(subprocess, "Popen", fake_popen)
    options = RpicamOptions(width=320, height=240)
    with RpicamMjpegSource() as source:
        source.open(options)
        assert calls[0][0] == build_command(options)
        assert calls[0][1]["shell"] is True
        one = source.read_frame()
        two = source.read_frame()
        assert (one.frame_id, two.frame_id) == (1, 2)
        assert one.jpeg_data == first and two.jpeg_data == second
        assert (one.width, one.height) == (320, 240)
        with pytest.raises(CameraError, match="ended"):
            source.read_frame()
    assert processes[0].waited
    assert processes[0].stdout.closed


def test_close_makes_source_unreadable(monkeypatch):
    monkeypatch.setattr(subprocess, "Popen", lambda command, **kwargs: _FakeProcess(b""))
    source = RpicamMjpegSource()
    source.open(RpicamOptions())
    assert source.is_open
    source.close()
    with pytest.raises(CameraError, match="not open"):
        source.read_frame()


def test_open_failure_raises(monkeypatch):
    def failing(command, **kwargs):
        raise OSError(2, "No such file or directory")

    monkeypatch.setattr(subprocess, "Popen", failing)
    with pytest.raises(CameraError, match="failed to start rpicam-vid"):
        RpicamMjpegSource().open(RpicamOptions())