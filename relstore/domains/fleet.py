"""Fleet Domain — vehicles, drivers, routes, shipments and maintenance records.

Invariants:
    - vehicle.plate_number, driver.license_number and shipment.tracking_number are unique
    - vehicle.driver_ids mirrors driver.vehicle_id; route.shipment_ids mirrors shipment.route_id
    - maintenance_record.vehicle_id is required and dies with its vehicle
    - Every other relationship soft-orphans: assignments are cleared, records kept
"""

import datetime as dt
from typing import Literal

from pydantic import Field

from relstore.core.domain_types import CascadePolicy, Snapshot
from relstore.core.schema import (
    BackReference, CascadeRule, ForeignKey, StoreSchema, UniqueField,
)
from relstore.domains.common import RecordModel, entity

HARD = CascadePolicy.HARD_CASCADE
SOFT = CascadePolicy.SOFT_ORPHAN


class VehiclePayload(RecordModel):
    plate_number: str = Field(min_length=1, max_length=20)
    make: str = ""
    model: str = ""
    year: int | None = Field(None, ge=1950, le=2100)
    capacity_kg: float = Field(0.0, ge=0)
    mileage: float = Field(0.0, ge=0)
    fuel_type: Literal["Diesel", "Petrol", "Electric", "Hybrid"] = "Diesel"
    status: Literal["Available", "In Transit", "Maintenance", "Retired"] = "Available"


class DriverPayload(RecordModel):
    name: str = Field(min_length=1, max_length=120)
    license_number: str = Field(min_length=1, max_length=40)
    phone: str = ""
    vehicle_id: str = ""
    status: Literal["Available", "On Duty", "Off Duty"] = "Available"


class RoutePayload(RecordModel):
    name: str = Field(min_length=1, max_length=120)
    origin: str = ""
    destination: str = ""
    waypoints: list[str] = Field(default_factory=list)
    distance_km: float = Field(0.0, ge=0)
    vehicle_id: str = ""
    driver_id: str = ""
    scheduled_date: dt.date | None = None
    status: Literal["Planned", "Active", "Completed", "Cancelled"] = "Planned"


class ShipmentPayload(RecordModel):
    tracking_number: str = Field(min_length=1, max_length=40)
    customer: str = ""
    origin: str = ""
    destination: str = ""
    weight_kg: float = Field(0.0, ge=0)
    vehicle_id: str = ""
    driver_id: str = ""
    route_id: str = ""
    dispatch_date: dt.date | None = None
    delivery_date: dt.date | None = None
    status: Literal["Pending", "In Transit", "Delivered", "Delayed"] = "Pending"


class MaintenanceRecordPayload(RecordModel):
    vehicle_id: str
    service_type: str = Field(min_length=1, max_length=120)
    date: dt.date
    next_due_date: dt.date | None = None
    cost: float = Field(0.0, ge=0)
    parts: list[str] = Field(default_factory=list)
    notes: str = ""
    status: Literal["Scheduled", "Completed"] = "Scheduled"


def _seed() -> Snapshot:
    return {
        "vehicle": [
            {
                "id": "veh-1", "plate_number": "TRK-1024", "make": "Volvo",
                "model": "FH16", "year": 2021, "capacity_kg": 18000.0,
                "mileage": 142000.0, "fuel_type": "Diesel", "status": "Available",
                "driver_ids": ["drv-1"],
            },
        ],
        "driver": [
            {
                "id": "drv-1", "name": "Alex Moreno", "license_number": "DL-559812",
                "phone": "", "vehicle_id": "veh-1", "status": "On Duty",
            },
        ],
        "route": [],
        "shipment": [],
        "maintenance_record": [
            {
                "id": "mnt-1", "vehicle_id": "veh-1", "service_type": "Oil change",
                "date": "2024-05-02", "next_due_date": "2024-11-02", "cost": 320.0,
                "parts": ["oil filter", "engine oil"], "notes": "", "status": "Completed",
            },
        ],
    }


SCHEMA = StoreSchema(
    name="fleet",
    entities=(
        entity(
            "vehicle", VehiclePayload,
            unique=(UniqueField("plate_number"),),
            search=("plate_number", "make", "model"),
            status_field="status",
        ),
        entity(
            "driver", DriverPayload,
            foreign_keys=(ForeignKey("vehicle_id", "vehicle"),),
            unique=(UniqueField("license_number"),),
            search=("name", "license_number", "phone"),
            status_field="status",
        ),
        entity(
            "route", RoutePayload,
            foreign_keys=(
                ForeignKey("vehicle_id", "vehicle"),
                ForeignKey("driver_id", "driver"),
            ),
            search=("name", "origin", "destination", "waypoints"),
            date_field="scheduled_date",
            status_field="status",
        ),
        entity(
            "shipment", ShipmentPayload,
            foreign_keys=(
                ForeignKey("vehicle_id", "vehicle"),
                ForeignKey("driver_id", "driver"),
                ForeignKey("route_id", "route"),
            ),
            unique=(UniqueField("tracking_number"),),
            search=("tracking_number", "customer", "origin", "destination"),
            date_field="dispatch_date",
            status_field="status",
        ),
        entity(
            "maintenance_record", MaintenanceRecordPayload,
            foreign_keys=(ForeignKey("vehicle_id", "vehicle", required=True),),
            search=("service_type", "notes", "parts"),
            date_field="next_due_date",
            status_field="status",
        ),
    ),
    back_references=(
        BackReference("vehicle", "driver_ids", "driver", "vehicle_id"),
        BackReference("route", "shipment_ids", "shipment", "route_id"),
    ),
    cascade_rules=(
        CascadeRule("vehicle", "driver", "vehicle_id", SOFT),
        CascadeRule("vehicle", "route", "vehicle_id", SOFT),
        CascadeRule("vehicle", "shipment", "vehicle_id", SOFT),
        CascadeRule("vehicle", "maintenance_record", "vehicle_id", HARD),
        CascadeRule("driver", "route", "driver_id", SOFT),
        CascadeRule("driver", "shipment", "driver_id", SOFT),
        CascadeRule("route", "shipment", "route_id", SOFT),
    ),
    seed=_seed,
)
