"""Tests for the frame decoders — 2A37, 2A19, FC20 and pass-through channels."""

import pytest

from hrcap.decoders.frame import FrameDecoder, analysis_report
from hrcap.decoders.hr import parse_heart_rate
from hrcap.decoders.info import decode_info_string, describe_body_location
from hrcap.decoders.observation import Observation, RawEvent
from hrcap.decoders.vendor import VENDOR_FRAME_SIZE

from tests.conftest import (
    FIXED_TIME,
    SAMPLE_FC20_FRAME,
    make_hr_measurement,
    make_vendor_frame,
)


def _physiological_fields(obs: Observation) -> list:
    return [
        obs.heart_rate,
        obs.rr_interval_ms,
        obs.battery_percent,
        obs.packet_counter,
        obs.status_flag,
        obs.device_timestamp,
        obs.extra_payload,
    ]


# ===================================================================
# Standard Heart Rate Measurement (2A37)
# ===================================================================


class TestParseHeartRate:
    def test_uint8(self):
        result = parse_heart_rate(make_hr_measurement(72))
        assert result.hr_bpm == 72
        assert result.rr_intervals_ms == []
        assert result.energy_expended_kj is None

    def test_uint16(self):
        result = parse_heart_rate(make_hr_measurement(300, uint16=True))
        assert result.hr_bpm == 300

    def test_uint16_flag_with_two_bytes_is_too_short(self):
        assert parse_heart_rate(bytes([0x01, 72])) is None

    def test_sensor_contact(self):
        assert parse_heart_rate(bytes([0x06, 72])).sensor_contact is True
        assert parse_heart_rate(bytes([0x02, 72])).sensor_contact is False
        assert parse_heart_rate(bytes([0x00, 72])).sensor_contact is None

    def test_energy_then_rr(self):
        data = make_hr_measurement(72, energy_kj=150, rr_raw=[1024])
        result = parse_heart_rate(data)
        assert result.energy_expended_kj == 150
        assert result.rr_intervals_ms == [1000.0]

    def test_rr_conversion(self):
        result = parse_heart_rate(make_hr_measurement(72, rr_raw=[819, 830]))
        assert len(result.rr_intervals_ms) == 2
        assert 798.0 <= result.rr_intervals_ms[0] <= 802.0


class TestHeartRateChannel:
    def test_decode_uint8(self):
        obs = FrameDecoder.decode("2A37", make_hr_measurement(72), FIXED_TIME)
        assert obs.heart_rate == 72
        assert obs.rr_interval_ms is None
        assert obs.anomaly is None

    def test_decode_uint16(self):
        obs = FrameDecoder.decode("2A37", make_hr_measurement(180, uint16=True), FIXED_TIME)
        assert obs.heart_rate == 180

    def test_first_rr_interval_reported(self):
        obs = FrameDecoder.decode("2A37", make_hr_measurement(60, rr_raw=[1024, 900]), FIXED_TIME)
        assert obs.rr_interval_ms == 1000

    @pytest.mark.parametrize("payload", [b"", b"\x00", b"\x01\x48"])
    def test_short_is_raw_only(self, payload):
        obs = FrameDecoder.decode("2A37", payload, FIXED_TIME)
        assert obs.is_raw_only
        assert obs.raw == payload
        assert obs.anomaly is not None


# ===================================================================
# Battery Level (2A19)
# ===================================================================


class TestBatteryChannel:
    def test_decode(self):
        obs = FrameDecoder.decode("2A19", b"\x55", FIXED_TIME)
        assert obs.battery_percent == 85
        assert obs.heart_rate is None

    def test_empty_is_raw_only(self):
        obs = FrameDecoder.decode("2A19", b"", FIXED_TIME)
        assert obs.is_raw_only
        assert obs.anomaly


# ===================================================================
# Vendor stream (FC20)
# ===================================================================


class TestVendorChannel:
    def test_sample_frame(self):
        obs = FrameDecoder.decode("FC20", SAMPLE_FC20_FRAME, FIXED_TIME)
        assert obs.packet_counter == 0x01
        assert obs.status_flag == 0x0A
        assert obs.rr_interval_ms == 763
        assert obs.device_timestamp == 0x2C4D4EC6
        assert obs.extra_payload == bytes.fromhex("8a1eaf3c")
        assert obs.anomaly is None

    def test_no_heart_rate_read_from_frame(self):
        # Heart rate comes from the metric deriver, not the frame
        obs = FrameDecoder.decode("FC20", SAMPLE_FC20_FRAME, FIXED_TIME)
        assert obs.heart_rate is None

    def test_built_frame(self):
        frame = make_vendor_frame(packet_counter=7, status_flag=0x0B, rr_interval_ms=1000)
        obs = FrameDecoder.decode("FC20", frame, FIXED_TIME)
        assert obs.packet_counter == 7
        assert obs.status_flag == 0x0B
        assert obs.rr_interval_ms == 1000

    def test_lowercase_and_full_uuid_channel(self):
        assert FrameDecoder.decode("fc20", SAMPLE_FC20_FRAME).rr_interval_ms == 763
        full = "0000fc20-0000-1000-8000-00805f9b34fb"
        obs = FrameDecoder.decode(full, SAMPLE_FC20_FRAME)
        assert obs.rr_interval_ms == 763
        assert obs.channel == full

    @pytest.mark.parametrize("length", range(VENDOR_FRAME_SIZE))
    def test_short_frames_are_raw_only(self, length):
        payload = SAMPLE_FC20_FRAME[:length]
        obs = FrameDecoder.decode("FC20", payload, FIXED_TIME)
        assert all(v is None for v in _physiological_fields(obs))
        assert obs.raw == payload
        assert "too short" in obs.anomaly

    def test_longer_frame_decodes_prefix(self):
        obs = FrameDecoder.decode("FC20", SAMPLE_FC20_FRAME + b"\xff\xff", FIXED_TIME)
        assert obs.rr_interval_ms == 763
        assert len(obs.raw) == 16

    def test_bytes_12_13_unrepresented(self):
        a = FrameDecoder.decode("FC20", make_vendor_frame(tail=b"\x00\x28"), FIXED_TIME)
        b = FrameDecoder.decode("FC20", make_vendor_frame(tail=b"\xff\xff"), FIXED_TIME)
        assert _physiological_fields(a) == _physiological_fields(b)


# ===================================================================
# Pass-through channels
# ===================================================================


class TestPassThrough:
    @pytest.mark.parametrize("channel", ["2A38", "2A29", "FD09", "FD15", "something"])
    def test_raw_only_without_anomaly(self, channel):
        obs = FrameDecoder.decode(channel, b"\x01\x02\x03", FIXED_TIME)
        assert obs.is_raw_only
        assert obs.anomaly is None
        assert obs.channel == channel
        assert obs.raw == b"\x01\x02\x03"

    def test_accepts_bytearray(self):
        obs = FrameDecoder.decode("FD09", bytearray(b"\x01"), FIXED_TIME)
        assert isinstance(obs.raw, bytes)

    def test_default_timestamp(self):
        obs = FrameDecoder.decode("FD09", b"\x01")
        assert obs.timestamp.tzinfo is not None

    def test_decode_event(self):
        event = RawEvent("2A19", b"\x40", FIXED_TIME)
        obs = FrameDecoder.decode_event(event)
        assert obs.battery_percent == 64
        assert obs.timestamp == FIXED_TIME


class TestInfoHelpers:
    @pytest.mark.parametrize(
        "value, name",
        [(0, "Other"), (1, "Chest"), (2, "Wrist"), (5, "Ear Lobe"), (6, "Foot"), (9, "Unknown (9)")],
    )
    def test_body_location(self, value, name):
        assert describe_body_location(bytes([value])) == name

    def test_body_location_empty(self):
        assert describe_body_location(b"") is None

    def test_info_string(self):
        assert decode_info_string(b"Morpheus\x00") == "Morpheus"

    def test_info_string_not_utf8(self):
        assert decode_info_string(b"\xff\xfe") is None


# ===================================================================
# Analysis report
# ===================================================================


class TestAnalysisReport:
    def test_vendor_report(self):
        obs = FrameDecoder.decode("FC20", SAMPLE_FC20_FRAME, FIXED_TIME)
        report = analysis_report(obs)
        assert report.startswith("=== Morpheus Data Analysis ===\n")
        assert "Timestamp: 2024-02-13T12:00:00Z" in report
        assert "Characteristic: FC20" in report
        assert "Raw Data: 01 0A C6 4E 4D 2C FB 02 8A 1E AF 3C 00 28" in report
        assert "RR Interval: 763 ms" in report
        assert "Packet Counter: 1" in report
        assert "Status Flag: 0x0A" in report
        assert f"Device Timestamp: {0x2C4D4EC6}" in report
        assert "Additional Data: 8A 1E AF 3C" in report
        assert "Heart Rate" not in report

    def test_unset_fields_omitted(self):
        obs = FrameDecoder.decode("FD09", b"\x01", FIXED_TIME)
        report = analysis_report(obs)
        assert "Battery" not in report
        assert "RR Interval" not in report

    def test_body_location_named(self):
        obs = FrameDecoder.decode("2A38", b"\x01", FIXED_TIME)
        assert "Body Sensor Location: Chest" in analysis_report(obs)

    def test_device_info_named(self):
        obs = FrameDecoder.decode("2A29", b"Morpheus", FIXED_TIME)
        assert "Manufacturer Name: Morpheus" in analysis_report(obs)

    def test_anomaly_reported(self):
        obs = FrameDecoder.decode("FC20", b"\x01\x02", FIXED_TIME)
        assert "Anomaly: vendor frame too short" in analysis_report(obs)
