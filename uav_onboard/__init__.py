"""Configuration, intersection decisions, grid tracking, UDP telemetry and MJPEG video for a line-following UAV."""

__version__ = "0.1.0"