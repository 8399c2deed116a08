"""Frame decoders for Morpheus heart-rate monitor channels."""

from hrcap.decoders.observation import Observation, RawEvent
from hrcap.decoders.frame import FrameDecoder, analysis_report
from hrcap.decoders.hr import HeartRateMeasurementDecoder
from hrcap.decoders.battery import BatteryDecoder
from hrcap.decoders.vendor import VendorFrameDecoder

__all__ = [
    "Observation",
    "RawEvent",
    "FrameDecoder",
    "analysis_report",
    "HeartRateMeasurementDecoder",
    "BatteryDecoder",
    "VendorFrameDecoder",
]
