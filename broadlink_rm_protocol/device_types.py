#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Registry of known appliance device types.

The 16-bit device type reported in a discovery response determines whether a session
can be created for the appliance, and whether that session supports RF operations.
"""

from __future__ import annotations

from enum import Enum

from .internal_types import *

RM_DEVICE_TYPES: Mapping[int, str] = {
    0x2737: 'Broadlink RM Mini',
    0x27c7: 'Broadlink RM Mini 3 A',
    0x27c2: 'Broadlink RM Mini 3 B',
    0x27de: 'Broadlink RM Mini 3 C',
    0x5f36: 'Broadlink RM Mini 3 D',
    0x273d: 'Broadlink RM Pro Phicomm',
    0x2712: 'Broadlink RM2',
    0x2783: 'Broadlink RM2 Home Plus',
    0x277c: 'Broadlink RM2 Home Plus GDT',
    0x278f: 'Broadlink RM Mini Shate',
}
"""Supported devices without RF support."""

RM_PLUS_DEVICE_TYPES: Mapping[int, str] = {
    0x272a: 'Broadlink RM2 Pro Plus',
    0x2787: 'Broadlink RM2 Pro Plus v2',
    0x278b: 'Broadlink RM2 Pro Plus BL',
    0x2797: 'Broadlink RM2 Pro Plus HYC',
    0x27a1: 'Broadlink RM2 Pro Plus R1',
    0x27a6: 'Broadlink RM2 Pro PP',
    0x279d: 'Broadlink RM3 Pro Plus',
    0x27a9: 'Broadlink RM3 Pro Plus v2',   # model RM 3422
    0x27c3: 'Broadlink RM3 Pro',
}
"""Supported devices with RF support."""

UNSUPPORTED_DEVICE_TYPES: Mapping[int, str] = {
    0x0000: 'Broadlink SP1',
    0x2711: 'Broadlink SP2',
    0x2719: 'Honeywell SP2',
    0x7919: 'Honeywell SP2',
    0x271a: 'Honeywell SP2',
    0x791a: 'Honeywell SP2',
    0x2733: 'OEM Branded SP Mini',
    0x273e: 'OEM Branded SP Mini',
    0x2720: 'Broadlink SP Mini',
    0x7d07: 'Broadlink SP Mini',
    0x753e: 'Broadlink SP 3',
    0x2728: 'Broadlink SPMini 2',
    0x2736: 'Broadlink SPMini Plus',
    0x2714: 'Broadlink A1',
    0x4eb5: 'Broadlink MP1',
    0x2722: 'Broadlink S1 (SmartOne Alarm Kit)',
    0x4e4d: 'Dooya DT360E (DOOYA_CURTAIN_V2) or Hysen Heating Controller',
    0x4ead: 'Dooya DT360E (DOOYA_CURTAIN_V2) or Hysen Heating Controller',
    0x947a: 'BroadLink Outlet',
}
"""Known devices that speak the discovery protocol but are not remotes."""

UNSUPPORTED_RANGE_MIN = 0x7530
UNSUPPORTED_RANGE_MAX = 0x7918
"""Inclusive range of device types used by OEM re-badged SP devices."""

class DeviceSupport(Enum):
    """The outcome of classifying a device type."""
    SUPPORTED = 'supported'
    KNOWN_UNSUPPORTED = 'known-unsupported'
    RANGE_UNSUPPORTED = 'range-unsupported'
    UNKNOWN = 'unknown'

class DeviceClassification:
    device_type: int
    support: DeviceSupport
    has_rf: bool
    label: Optional[str]

    def __init__(self, device_type: int, support: DeviceSupport, has_rf: bool=False, label: Optional[str]=None):
        self.device_type = device_type
        self.support = support
        self.has_rf = has_rf
        self.label = label

    @property
    def is_supported(self) -> bool:
        return self.support == DeviceSupport.SUPPORTED

    @property
    def device_type_hex(self) -> str:
        return f"{self.device_type:x}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DeviceClassification):
            return NotImplemented
        return (self.device_type, self.support, self.has_rf, self.label) == (
            other.device_type, other.support, other.has_rf, other.label)

    def __str__(self) -> str:
        return f"DeviceClassification(0x{self.device_type:04x}, {self.support.value}, has_rf={self.has_rf}, label={self.label!r})"

    def __repr__(self) -> str:
        return str(self)

def classify(device_type: int) -> DeviceClassification:
    """Classifies a 16-bit device type.

    Known-unsupported types are checked first, then the reserved OEM range, then the
    supported tables. Anything else is UNKNOWN.
    """
    label = UNSUPPORTED_DEVICE_TYPES.get(device_type)
    if label is not None:
        return DeviceClassification(device_type, DeviceSupport.KNOWN_UNSUPPORTED, label=label)
    if UNSUPPORTED_RANGE_MIN <= device_type <= UNSUPPORTED_RANGE_MAX:
        return DeviceClassification(device_type, DeviceSupport.RANGE_UNSUPPORTED)
    label = RM_DEVICE_TYPES.get(device_type)
    if label is not None:
        return DeviceClassification(device_type, DeviceSupport.SUPPORTED, has_rf=False, label=label)
    label = RM_PLUS_DEVICE_TYPES.get(device_type)
    if label is not None:
        return DeviceClassification(device_type, DeviceSupport.SUPPORTED, has_rf=True, label=label)
    return DeviceClassification(device_type, DeviceSupport.UNKNOWN)

def device_model(device_type: int) -> str:
    """Returns the human-readable model name of a supported device type, or '' if it is not supported."""
    return RM_DEVICE_TYPES.get(device_type) or RM_PLUS_DEVICE_TYPES.get(device_type) or ''
