"""
Reply shapes, device facts and the generic XML decoder
"""

from .decoder import decode_reply, parse_xml, xml_field, xml_list, xml_nested
from .facts import (
    RPC_SYSTEM_INFORMATION,
    SystemInformation,
    is_routing_platform,
    is_security_family,
)
from .replies import (
    AddressFamily,
    Chassis,
    ChassisInventory,
    ChassisModule,
    ChassisSubModule,
    ChassisSubSubModule,
    InterfaceAddress,
    InterfaceInformationTerse,
    LogicalInterfaceTerse,
    MultiRoutingEngineInventory,
    NextHop,
    PhysicalInterfaceTerse,
    Route,
    RouteEntry,
    RouteInformation,
    RouteTable,
    RoutingEngineInventory,
    decode_chassis_inventory,
)

__all__ = [
    "decode_reply",
    "parse_xml",
    "xml_field",
    "xml_list",
    "xml_nested",
    "RPC_SYSTEM_INFORMATION",
    "SystemInformation",
    "is_routing_platform",
    "is_security_family",
    "AddressFamily",
    "Chassis",
    "ChassisInventory",
    "ChassisModule",
    "ChassisSubModule",
    "ChassisSubSubModule",
    "InterfaceAddress",
    "InterfaceInformationTerse",
    "LogicalInterfaceTerse",
    "MultiRoutingEngineInventory",
    "NextHop",
    "PhysicalInterfaceTerse",
    "Route",
    "RouteEntry",
    "RouteInformation",
    "RouteTable",
    "RoutingEngineInventory",
    "decode_chassis_inventory",
]
