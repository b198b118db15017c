"""
Vehicle Inferencer.

Square has no vehicle records, but service line items are priced per vehicle
size ("Vehicle Size - MEDIUM", "Full Detail SMALL", ...). Every size signal
found on an item row becomes evidence that the customer owns a vehicle of
that size class. Records are always emitted incomplete: only the size is
known, never make, model or year.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping

import structlog

from migration.rows import ItemRow
from migration.transactions import CustomerRef, resolve_customer

logger = structlog.get_logger()

_STRUCTURED_SIZE = re.compile(r"Vehicle Size\s*-?\s*(SMALL|MEDIUM|LARGE)", re.IGNORECASE)


class SizeClass(str, Enum):
    SEDAN = "sedan"
    TRUCK_SUV_2ROW = "truck_suv_2row"
    SUV_3ROW_VAN = "suv_3row_van"


SIZE_CLASS_LABELS = {
    SizeClass.SEDAN: "Sedan",
    SizeClass.TRUCK_SUV_2ROW: "Truck/SUV (2-Row)",
    SizeClass.SUV_3ROW_VAN: "SUV (3-Row) / Van",
}


@dataclass(frozen=True)
class InferredVehicle:
    customer_key: str
    customer_name: str
    size_class: SizeClass
    observation_count: int
    incomplete: bool = True


@dataclass(frozen=True)
class VehicleInference:
    vehicles: tuple[InferredVehicle, ...]
    size_counts: dict[SizeClass, int]
    unique_customers: int
    unresolved_rows: int  # size-labelled rows with no resolvable customer

    @property
    def count(self) -> int:
        return len(self.vehicles)


def _lookup(token: str, size_map: Mapping[str, str]) -> SizeClass | None:
    value = size_map.get(token.upper())
    if value is None:
        return None
    try:
        return SizeClass(value)
    except ValueError:
        return None


def match_size_class(label: str, size_map: Mapping[str, str]) -> SizeClass | None:
    """Direct token match first, then the structured "Vehicle Size - X" form."""
    if not label:
        return None
    upper_map = {token.strip().upper(): value for token, value in size_map.items()}
    upper = label.upper()
    for token in upper_map:
        if token and token in upper:
            size = _lookup(token, upper_map)
            if size is not None:
                return size

    match = _STRUCTURED_SIZE.search(label)
    if match:
        return _lookup(match.group(1), upper_map)
    return None


def infer_vehicles(
    items: Iterable[ItemRow | Mapping[str, str]],
    size_map: Mapping[str, str],
    directory: Mapping[str, CustomerRef] | None = None,
) -> VehicleInference:
    """
    One vehicle per distinct (customer, size class) pair.

    Different size classes for the same customer are kept apart; a customer
    may own several vehicles. A single observation is enough.
    """
    counts: dict[tuple[str, SizeClass], int] = {}
    names: dict[tuple[str, SizeClass], str] = {}
    unresolved = 0

    for raw in items:
        item = raw if isinstance(raw, ItemRow) else ItemRow.from_raw(raw)
        size = match_size_class(item.price_point_name, size_map)
        if size is None:
            continue
        ref = resolve_customer(item, directory)
        if ref is None:
            unresolved += 1
            continue
        key = (ref.reference_id, size)
        counts[key] = counts.get(key, 0) + 1
        names.setdefault(key, ref.name)

    vehicles = tuple(
        InferredVehicle(customer_key=ref, customer_name=names[(ref, size)], size_class=size, observation_count=n)
        for (ref, size), n in counts.items()
    )
    size_counts = {size: 0 for size in SizeClass}
    for vehicle in vehicles:
        size_counts[vehicle.size_class] += 1

    inference = VehicleInference(
        vehicles=vehicles,
        size_counts=size_counts,
        unique_customers=len({v.customer_key for v in vehicles}),
        unresolved_rows=unresolved,
    )
    logger.info(
        "migration.vehicles.inferred",
        vehicles=inference.count,
        customers=inference.unique_customers,
        unresolved_rows=unresolved,
    )
    return inference


def build_vehicle_payload(vehicle: InferredVehicle) -> dict[str, Any]:
    label = SIZE_CLASS_LABELS[vehicle.size_class]
    return {
        "customer_reference_id": vehicle.customer_key,
        "vehicle_type": "standard",
        "size_class": vehicle.size_class.value,
        "is_incomplete": True,
        "notes": (
            f"Inferred from transaction history "
            f"({vehicle.observation_count} service records, size: {label})"
        ),
    }
