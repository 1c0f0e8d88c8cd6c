#!/usr/bin/env python3
"""
Typed reply shapes for structured operational RPCs.

Each shape names its root element in XML_TAG and builds its own request with
rpc(); decode the reply data with decoder.decode_reply().
"""

from dataclasses import dataclass
from typing import Dict, List
from xml.sax.saxutils import escape

from junos_netconf.models.decoder import decode_element, find_root, parse_xml, xml_field, xml_list, xml_nested
from junos_netconf.utils.error_handling import ProtocolError


# Interfaces

@dataclass
class InterfaceAddress:
    local: str = xml_field("ifa-local")


@dataclass
class AddressFamily:
    name: str = xml_field("address-family-name")
    addresses: List[InterfaceAddress] = xml_list("interface-address")


@dataclass
class LogicalInterfaceTerse:
    name: str = xml_field("name")
    admin_status: str = xml_field("admin-status")
    oper_status: str = xml_field("oper-status")
    address_families: List[AddressFamily] = xml_list("address-family")


@dataclass
class PhysicalInterfaceTerse:
    name: str = xml_field("name")
    admin_status: str = xml_field("admin-status")
    oper_status: str = xml_field("oper-status")
    logical_interfaces: List[LogicalInterfaceTerse] = xml_list("logical-interface")


@dataclass
class InterfaceInformationTerse:
    """
    Reply of `show interfaces terse`.

    Filtering on a physical name fills physical_interfaces, filtering on a
    unit (ge-0/0/0.0) fills logical_interfaces.
    """

    XML_TAG = "interface-information"

    physical_interfaces: List[PhysicalInterfaceTerse] = xml_list("physical-interface")
    logical_interfaces: List[LogicalInterfaceTerse] = xml_list("logical-interface")

    @staticmethod
    def rpc(interface_name: str = "") -> str:
        if interface_name:
            return (
                "<get-interface-information>"
                f"<interface-name>{escape(interface_name)}</interface-name>"
                "<terse/></get-interface-information>"
            )
        return "<get-interface-information><terse/></get-interface-information>"


# Routes

@dataclass
class NextHop:
    selected: bool = xml_field("selected-next-hop", False)
    local_interface: str = xml_field("nh-local-interface")
    to: str = xml_field("to")
    via: str = xml_field("via")


@dataclass
class RouteEntry:
    as_path: str = xml_field("as-path")
    current_active: bool = xml_field("current-active", False)
    local_preference: int = xml_field("local-preference", 0)
    metric: int = xml_field("metric", 0)
    next_hops: List[NextHop] = xml_list("nh")
    next_hop_type: str = xml_field("nh-type")
    preference: int = xml_field("preference", 0)
    protocol_name: str = xml_field("protocol-name")


@dataclass
class Route:
    destination: str = xml_field("rt-destination")
    entries: List[RouteEntry] = xml_list("rt-entry")


@dataclass
class RouteTable:
    name: str = xml_field("table-name")
    routes: List[Route] = xml_list("rt")


@dataclass
class RouteInformation:
    """Reply of `show route all [table X]`"""

    XML_TAG = "route-information"

    tables: List[RouteTable] = xml_list("route-table")

    @staticmethod
    def rpc(table: str = "") -> str:
        if table:
            return (
                "<get-route-information><all/>"
                f"<table>{escape(table)}</table></get-route-information>"
            )
        return "<get-route-information><all/></get-route-information>"


# Chassis inventory

@dataclass
class ChassisSubSubModule:
    name: str = xml_field("name")
    version: str = xml_field("version")
    part_number: str = xml_field("part-number")
    serial_number: str = xml_field("serial-number")
    model_number: str = xml_field("model-number")
    clei_code: str = xml_field("clei-code")
    description: str = xml_field("description")


@dataclass
class ChassisSubModule(ChassisSubSubModule):
    sub_sub_modules: List[ChassisSubSubModule] = xml_list("chassis-sub-sub-module")


@dataclass
class ChassisModule(ChassisSubSubModule):
    sub_modules: List[ChassisSubModule] = xml_list("chassis-sub-module")


@dataclass
class Chassis(ChassisSubSubModule):
    modules: List[ChassisModule] = xml_list("chassis-module")


@dataclass
class ChassisInventory:
    """Reply of `show chassis hardware`"""

    XML_TAG = "chassis-inventory"
    RPC = "<get-chassis-inventory/>"

    chassis: Chassis = xml_nested("chassis", Chassis)

    @classmethod
    def rpc(cls) -> str:
        return cls.RPC


@dataclass
class RoutingEngineInventory:
    re_name: str = xml_field("re-name")
    inventory: ChassisInventory = xml_nested("chassis-inventory", ChassisInventory)


@dataclass
class MultiRoutingEngineInventory:
    """Chassis inventory of a cluster or dual-RE device, one item per RE"""

    XML_TAG = "multi-routing-engine-results"

    items: List[RoutingEngineInventory] = xml_list("multi-routing-engine-item")


def decode_chassis_inventory(payload: str) -> Dict[str, ChassisInventory]:
    """
    Decode either a single or a multi-routing-engine chassis inventory.

    Returns:
        Inventory per routing engine name; a single-RE reply uses the key ""

    Raises:
        ProtocolError: malformed XML or no inventory in the reply
    """
    root = parse_xml(payload)
    multi = find_root(root, MultiRoutingEngineInventory.XML_TAG)
    if multi is not None:
        results = decode_element(multi, MultiRoutingEngineInventory, payload)
        return {item.re_name: item.inventory for item in results.items}

    single = find_root(root, ChassisInventory.XML_TAG)
    if single is None:
        raise ProtocolError(f"<{ChassisInventory.XML_TAG}> not found in reply", payload)
    return {"": decode_element(single, ChassisInventory, payload)}
