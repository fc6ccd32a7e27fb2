"""Anomaly detector implementations and registry."""

from .base import Detector
from .registry import available_detector_ids, create_detector, create_detectors

__all__ = ["Detector", "available_detector_ids", "create_detector", "create_detectors"]
