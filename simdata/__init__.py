"""Deterministic synthetic sensor data for a SensorBase collection service."""

__version__ = "0.1.0"
