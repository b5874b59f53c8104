# uav_onboard

Onboard software for a small line-following UAV that flies over a grid of
painted lines. The package contains:

- **Configuration** (`uav_onboard.config`): the `NetworkConfig` and `VisionConfig`
  dataclasses, filled by `load_network_config(config_dir)` and
  `load_vision_config(config_dir)` from `network.toml` and `vision.toml`.
  A missing or unparsable file gives the defaults. A missing key, or a value
  of the wrong type, leaves that field at its default.
- **Intersection decisions** (`uav_onboard.decision`): `IntersectionDecisionEngine`
  collects per-frame `IntersectionDetection` observations in a sliding window.
  It classifies the window as cross, T, L or straight and returns an
  `IntersectionDecision`: state, action, accepted branch mask, approach phase,
  and whether a node should be recorded (`event_ready`) or a turn prepared.
  `reset()` and `start_cooldown()` clear the window.
- **Grid tracking** (`uav_onboard.grid`): `GridCoordinateTracker` turns
  event-ready decisions into `GridNodeEvent`s with local `GridCoord`s and
  `GridHeading`s, and chooses the heading to the next node.
  `rotate_camera_branch_mask_to_grid` maps a front/right/back/left mask onto
  north/east/south/west bits.
- **Telemetry** (`uav_onboard.telemetry`, `uav_onboard.udp`):
  `build_telemetry_json` turns a `BringupTelemetry` record into the compact JSON
  `TELEMETRY` message, with keys sorted. `UdpTelemetrySender` sends each
  payload as one UDP datagram and raises `TelemetrySendError` on failure.
- **Video** (`uav_onboard.video_packet`, `uav_onboard.streamer`,
  `uav_onboard.camera`):
  - `RpicamMjpegSource` starts `rpicam-vid` through the shell and returns
    `CameraFrame`s. It raises `CameraError` on failure. The tool's stderr goes
    to `/tmp/astroquad_rpicam_vid.log`.
  - `MjpegFrameSplitter` cuts complete JPEG images out of a byte stream.
  - `UdpMjpegStreamer` splits a frame into UDP chunks of up to 1200 bytes of
    payload. Each chunk carries the 28-byte big-endian `AQV1` header
    (`serialize_header` / `parse_header`, errors raise `VideoPacketError`).
    Sending stops with `StreamError` on the first failure.

## Installation

```
pip install .
```

## Bring-up telemetry

The `uav-onboard` command sends a simple `TELEMETRY` packet to the ground
station at a fixed interval. Use it to check the network path.

```
uav-onboard --config ./config --count 10
```

| Option              | Meaning                                                  |
|---------------------|----------------------------------------------------------|
| `--config <dir>`    | Configuration directory containing `network.toml`        |
| `--gcs-ip <ip>`     | Override the ground-station destination IP               |
| `--port <n>`        | Override the telemetry UDP port (used when > 0)          |
| `--count <n>`       | Number of packets to send; `0` (the default) is forever  |
| `--interval-ms <n>` | Override the send interval (used when > 0)               |
| `-h`, `--help`      | Show help and exit                                       |

The default configuration directory is `../config`. A numeric value that does
not start with an integer keeps the previous value. An unknown option, or an
option with no value after it, prints an error and the usage, then exits with
status 2. If the socket cannot be opened or a send fails, the command exits
with status 1.

### `network.toml`

```toml
[gcs]
ip = "192.168.4.2"
telemetry_port = 14550
command_port = 14551
video_port = 5600

[telemetry]
send_interval_ms = 1000
```

The defaults are destination `127.0.0.1`, telemetry port 14550, command port
14551, video port 5600 and an interval of 1000 ms.

## Using the library

```python
from uav_onboard.config import load_vision_config
from uav_onboard.decision import IntersectionDecisionEngine
from uav_onboard.grid import GridCoordinateTracker

vision = load_vision_config("config")
engine = IntersectionDecisionEngine(vision.intersection_decision)
tracker = GridCoordinateTracker(vision.intersection_decision)

# For each detection, pass the frame size, frame number, timestamp and
# whether a turn is expected:
decision = engine.update(detection, 960, 720, frame_seq, timestamp_ms, False)
if decision.event_ready:
    node = tracker.update(decision, frame_seq, timestamp_ms)
    print(node.local_coord, node.arrival_heading)
```

Streaming camera frames:

```python
from uav_onboard.camera import RpicamMjpegSource, RpicamOptions
from uav_onboard.streamer import UdpMjpegStreamer

with RpicamMjpegSource() as camera, UdpMjpegStreamer(chunk_pacing_us=150) as streamer:
    camera.open(RpicamOptions(width=640, height=480, fps=15))
    streamer.open("127.0.0.1", 5600)
    while True:
        streamer.send_frame(camera.read_frame())
```

## What the package does not do

- It does no image processing. It has no line, marker or intersection
  detection, so the `IntersectionDetection` values given to the decision
  engine must come from your own code.
- The only command is the bring-up telemetry sender. No command combines
  camera capture, decisions and telemetry into a running pipeline.
- It only sends: there is no command receiver and no video or telemetry
  receiver for the ground station.

## Running the tests

```
pip install .[test]
pytest
```