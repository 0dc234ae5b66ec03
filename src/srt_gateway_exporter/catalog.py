from __future__ import annotations

from typing import NamedTuple


NONE = "None"
HASH = "#"
SOURCE_PREFIX = "Source"
DESTINATION_PREFIX = "Destination"
PORT_FIELD = "port"


class CatalogField(NamedTuple):
    name: str
    field: str


DEVICE_ID = CatalogField("DeviceID", "_id")
LAST_CONNECTED = CatalogField("LastConnected", "lastConnectedAt")
SERIAL_NUMBER = CatalogField("SerialNumber", "serialNumber")

DEVICE_FIELDS: tuple[CatalogField, ...] = (
    DEVICE_ID,
    CatalogField("Type", "type"),
    CatalogField("IPAddress", "ip"),
    CatalogField("DeviceName", "name"),
    LAST_CONNECTED,
    CatalogField("StatusCode", "statusCode"),
    CatalogField("Status", "status"),
    CatalogField("StatusDetails", "statusDetails"),
    SERIAL_NUMBER,
    CatalogField("FirmwareVersion", "firmware"),
    CatalogField("HasAdminError", "hasAdminError"),
    CatalogField("PendingSync", "pendingSync"),
    CatalogField("LastConnection", "lastConnection"),
)

ROUTE_UPTIME = CatalogField("RouteUptime", "elapsedTime")
ROUTE_SOURCE = CatalogField("Source", "source")
ROUTE_DESTINATIONS = CatalogField("Destinations", "destinations")

ROUTE_FIELDS: tuple[CatalogField, ...] = (
    ROUTE_UPTIME,
    CatalogField("RouteID", "id"),
    CatalogField("RouteStatus", "summaryStatusDetails"),
    ROUTE_SOURCE,
    ROUTE_DESTINATIONS,
)

# raw JSON text is cached for these and parsed at flatten time
RAW_ROUTE_FIELDS = frozenset({ROUTE_SOURCE, ROUTE_DESTINATIONS})

ENDPOINT_ADDRESS = CatalogField("Address", "address")

ENDPOINT_FIELDS: tuple[CatalogField, ...] = (
    CatalogField("Name", "name"),
    CatalogField("Type", "mode"),
    CatalogField("Protocol", "protocol"),
    ENDPOINT_ADDRESS,
    CatalogField("Status", "summaryStatusDetails"),
)


def route_key(route_name: str, name: str) -> str:
    return f"{route_name}{HASH}{name}"
