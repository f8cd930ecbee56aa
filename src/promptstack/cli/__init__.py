"""Command-line interface for inspecting stored prompt state."""
