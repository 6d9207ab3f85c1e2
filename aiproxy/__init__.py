"""AI inference proxy with per-client admission control and usage telemetry."""
