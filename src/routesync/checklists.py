"""Default checklist items per stop type."""

from __future__ import annotations

from collections.abc import Iterable

from routesync.models import ChecklistItem, Stop, StopType

DEFAULT_CHECKLISTS: dict[StopType, tuple[str, ...]] = {
    StopType.START: (
        "Verify truck is ready for departure",
        "Check all cargo loads are secure",
        "Confirm route and stops are loaded on device",
        "Take initial truck condition photos",
        "Verify emergency kit and tools are present",
        "Check fuel levels and tire pressure",
        "Confirm all required documentation is present",
    ),
    StopType.PICKUP: (
        "Verify vehicle VIN matches paperwork",
        "Inspect vehicle for existing damage",
        "Take vehicle condition photos",
        "Record odometer reading",
        "Collect all required paperwork",
        "Verify pickup location matches order",
        "Confirm contact person and obtain signature",
        "Secure vehicle on truck properly",
        "Complete Bill of Lading",
    ),
    StopType.DROP: (
        "Verify delivery location matches order",
        "Inspect vehicle for damage during transport",
        "Take delivery condition photos",
        "Record odometer reading",
        "Obtain delivery confirmation signature",
        "Complete delivery paperwork",
        "Unload vehicle safely",
        "Verify contact person identity",
        "Confirm all paperwork is complete",
    ),
    StopType.BREAK: (
        "Park truck in safe location",
        "Set parking brake",
        "Secure cargo load",
        "Verify truck and trailer are secure",
    ),
    StopType.REST: (
        "Park truck in designated rest area",
        "Set parking brake",
        "Secure cargo load",
        "Lock truck and trailer",
        "Verify truck and trailer are secure",
    ),
    StopType.FUEL: (
        "Park truck at fuel station safely",
        "Set parking brake",
        "Secure cargo load",
        "Fuel truck to required level",
        "Check fuel levels and quality",
        "Record fuel purchase details",
        "Verify truck and trailer are secure",
    ),
    StopType.END: (
        "Park truck at final destination safely",
        "Set parking brake",
        "Secure all loads and equipment",
        "Complete final documentation",
        "Take final truck condition photos",
        "Report any issues or incidents",
        "Verify all stops completed successfully",
    ),
}


def default_checklist(stop_type: StopType) -> list[ChecklistItem]:
    return [ChecklistItem(item=item) for item in DEFAULT_CHECKLISTS.get(stop_type, ())]


def with_default_checklists(stops: Iterable[Stop]) -> list[Stop]:
    """Fill every stop that has no checklist with the defaults for its type."""
    return [
        stop if stop.checklist else stop.model_copy(update={"checklist": default_checklist(stop.stop_type)})
        for stop in stops
    ]
