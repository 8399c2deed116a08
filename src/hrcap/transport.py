"""BLE transport: find a Morpheus monitor and feed its frames to the coordinator.

The transport discovers the device, reads every readable
characteristic once, subscribes to every notifying one and turns each value
into a ``RawEvent`` posted to the ``CaptureCoordinator``. Connection and
disconnection become ``Connected``/``Disconnected`` messages, which start and
stop the recording session.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from hrcap.coordinator import CaptureCoordinator, Disconnected
from hrcap.decoders.observation import RawEvent
from hrcap.errors import TransportUnavailable
from hrcap.protocol import HR_SERVICE_UUID, channel_role, short_uuid

logger = logging.getLogger(__name__)

DEFAULT_NAME_HINTS = ("morpheus", "hrm")


def is_heart_rate_monitor(
    device: BLEDevice,
    adv: AdvertisementData,
    name_hints: tuple[str, ...] = DEFAULT_NAME_HINTS,
) -> bool:
    """Heart-rate service advertised, or a name that looks like a Morpheus."""
    if HR_SERVICE_UUID in (uuid.lower() for uuid in adv.service_uuids):
        return True
    name = (adv.local_name or device.name or "").lower()
    return any(hint in name for hint in name_hints)


async def scan(
    timeout: float = 10.0,
    name_hints: tuple[str, ...] = DEFAULT_NAME_HINTS,
) -> list[tuple[BLEDevice, AdvertisementData]]:
    """Scan for nearby heart-rate monitors.

    Returns a list of (device, advertisement_data) tuples.
    """
    results: list[tuple[BLEDevice, AdvertisementData]] = []

    def _callback(device: BLEDevice, adv: AdvertisementData) -> None:
        if not is_heart_rate_monitor(device, adv, name_hints):
            return
        if any(d.address == device.address for d, _ in results):
            return
        results.append((device, adv))
        name = adv.local_name or device.name or "Unknown Device"
        print(f"  Found: {name} [{device.address}] RSSI={adv.rssi} dBm")
        if adv.manufacturer_data:
            for mid, data in adv.manufacturer_data.items():
                print(f"    Manufacturer 0x{mid:04X}: {data.hex()}")

    scanner = BleakScanner(detection_callback=_callback)
    print(f"Scanning for heart rate monitors ({timeout}s)...")
    await scanner.start()
    await asyncio.sleep(timeout)
    await scanner.stop()

    if not results:
        print("No heart rate monitors found.")
    else:
        print(f"\n{len(results)} device(s) found.")
    return results


async def find_monitor(
    timeout: float = 10.0,
    name_hints: tuple[str, ...] = DEFAULT_NAME_HINTS,
) -> BLEDevice:
    """Find the first monitor, preferring ones named like a Morpheus."""
    results = await scan(timeout, name_hints)
    if not results:
        raise TransportUnavailable("no heart rate monitor found")
    for device, adv in results:
        name = (adv.local_name or device.name or "").lower()
        if "morpheus" in name:
            return device
    return results[0][0]


def describe_services(client: BleakClient) -> list[str]:
    """List every service and characteristic, with properties and known roles."""
    lines = [f"Discovered {len(list(client.services))} services"]
    for service in client.services:
        lines.append(f"Service: {short_uuid(service.uuid)} [{service.description}]")
        for char in service.characteristics:
            props = ", ".join(sorted(char.properties))
            role = channel_role(char.uuid)
            tag = f" <-- {role}" if role else ""
            lines.append(f"  Characteristic: {short_uuid(char.uuid)} - Properties: {props}{tag}")
    return lines


def writable_chars(client: BleakClient) -> list[BleakGATTCharacteristic]:
    return [
        char
        for service in client.services
        for char in service.characteristics
        if "write" in char.properties or "write-without-response" in char.properties
    ]


async def capture(
    coordinator: CaptureCoordinator,
    address: str | None = None,
    duration: float | None = None,
    scan_timeout: float = 10.0,
    name_hints: tuple[str, ...] = DEFAULT_NAME_HINTS,
    until: asyncio.Event | None = None,
    action: Callable[[BleakClient], Awaitable[None]] | None = None,
) -> None:
    """Connect to a monitor and record until ``duration`` elapses or ``until`` is set.

    Runs until cancelled when neither is given. If ``action`` is given it is
    awaited once everything is subscribed and the session ends when it
    returns; the probe uses this to write commands while frames are recorded.
    Raises TransportUnavailable if no device is found or the connection fails.
    """
    if address is None:
        device = await find_monitor(scan_timeout, name_hints)
        address = device.address
        device_name = device.name or address
    else:
        device_name = address

    closing = False
    lost = False
    stop = until or asyncio.Event()

    def _on_disconnect(_client: BleakClient) -> None:
        nonlocal lost
        if closing:
            return
        lost = True
        coordinator.post(Disconnected("Peripheral disconnected"))
        stop.set()

    print(f"Connecting to {address}...")
    try:
        client = BleakClient(address, disconnected_callback=_on_disconnect)
        await client.connect()
    except (BleakError, asyncio.TimeoutError, OSError) as e:
        raise TransportUnavailable(f"could not connect to {address}: {e}") from e

    try:
        session_id = await coordinator.connected(device_name)
        print(f"Connected. Recording session {session_id}")
        for line in describe_services(client):
            await coordinator.note(line)

        def _on_notify(char: BleakGATTCharacteristic, data: bytearray) -> None:
            coordinator.post(RawEvent(short_uuid(char.uuid), bytes(data)))

        subscribed = 0
        for service in client.services:
            for char in service.characteristics:
                if "read" in char.properties:
                    try:
                        value = await client.read_gatt_char(char)
                    except (BleakError, OSError) as e:
                        logger.warning("Read of %s failed: %s", char.uuid, e)
                    else:
                        coordinator.post(RawEvent(short_uuid(char.uuid), bytes(value)))
                if "notify" in char.properties:
                    try:
                        await client.start_notify(char, _on_notify)
                        subscribed += 1
                    except (BleakError, OSError) as e:
                        logger.warning("Failed to subscribe %s: %s", char.uuid, e)

        print(f"Subscribed to {subscribed} characteristic(s). Press Ctrl+C to stop.\n")

        if action is not None:
            await action(client)
            return

        try:
            if duration:
                await asyncio.wait_for(stop.wait(), timeout=duration)
            else:
                await stop.wait()
        except asyncio.TimeoutError:
            pass
    finally:
        closing = True
        if client.is_connected:
            await client.disconnect()
        if not lost:
            await coordinator.disconnected()
