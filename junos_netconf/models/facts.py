#!/usr/bin/env python3
"""
Device facts gathered with <get-system-information/> and device-family checks
"""

from dataclasses import dataclass
from typing import Optional

from junos_netconf.models.decoder import xml_field

RPC_SYSTEM_INFORMATION = "<get-system-information/>"

SECURITY_FAMILY_PREFIXES = ("srx", "vsrx", "j")
ROUTING_PLATFORM_PREFIXES = ("mx", "vmx")


def _model_has_prefix(model: str, prefixes) -> bool:
    return (model or "").lower().startswith(prefixes)


def is_security_family(model: str) -> bool:
    """SRX / vSRX / J-series security appliance"""
    return _model_has_prefix(model, SECURITY_FAMILY_PREFIXES)


def is_routing_platform(model: str) -> bool:
    """MX / vMX routing platform"""
    return _model_has_prefix(model, ROUTING_PLATFORM_PREFIXES)


@dataclass
class SystemInformation:
    """Snapshot of device facts, written once when a session starts"""

    XML_TAG = "system-information"

    hardware_model: str = xml_field("hardware-model")
    os_name: str = xml_field("os-name")
    os_version: str = xml_field("os-version")
    serial_number: str = xml_field("serial-number")
    host_name: str = xml_field("host-name")
    cluster_node: Optional[bool] = xml_field("cluster-node", None)

    def is_security_family(self) -> bool:
        return is_security_family(self.hardware_model)

    def is_routing_platform(self) -> bool:
        return is_routing_platform(self.hardware_model)

    def not_compatible_msg(self) -> str:
        return f"not compatible with Junos device {self.hardware_model!r}"
