"""Trips and vehicles: looked up when a timer is exported."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime

from .clock import parse_iso, to_instant, to_iso
from .errors import InvalidState, ValidationError

UNKNOWN_PLATE = "Unbekannt"


@dataclass
class Vehicle:
    name: str
    plate: str
    tank_volume_l: float = 0.0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class Trip:
    vehicle_id: str
    start_datetime: datetime
    start_km: float = 0.0
    end_datetime: datetime | None = None
    end_km: float | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_open(self) -> bool:
        return self.end_datetime is None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["start_datetime"] = to_iso(self.start_datetime)
        data["end_datetime"] = to_iso(self.end_datetime) if self.end_datetime else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Trip:
        return cls(
            id=data["id"],
            vehicle_id=data["vehicle_id"],
            start_datetime=parse_iso(data["start_datetime"]),
            start_km=float(data.get("start_km") or 0.0),
            end_datetime=parse_iso(data["end_datetime"]) if data.get("end_datetime") else None,
            end_km=float(data["end_km"]) if data.get("end_km") is not None else None,
        )


def vehicle_plate(vehicle: Vehicle | None) -> str:
    if vehicle is None or not vehicle.plate:
        return UNKNOWN_PLATE
    return vehicle.plate


class TripRegistry:
    """In-memory lookup of trips and their vehicles."""

    def __init__(self, vehicles: list[Vehicle] | None = None, trips: list[Trip] | None = None):
        self._vehicles: dict[str, Vehicle] = {v.id: v for v in vehicles or []}
        self._trips: dict[str, Trip] = {t.id: t for t in trips or []}

    @property
    def vehicles(self) -> list[Vehicle]:
        return list(self._vehicles.values())

    @property
    def trips(self) -> list[Trip]:
        return sorted(self._trips.values(), key=lambda t: t.start_datetime)

    def add_vehicle(self, vehicle: Vehicle) -> Vehicle:
        self._vehicles[vehicle.id] = vehicle
        return vehicle

    def add_trip(self, trip: Trip) -> Trip:
        if trip.vehicle_id not in self._vehicles:
            raise ValidationError(f"Unknown vehicle: {trip.vehicle_id}")
        self._trips[trip.id] = trip
        return trip

    def current_trip(self) -> Trip | None:
        """The trip that has not been ended yet, if any."""
        for trip in reversed(self.trips):
            if trip.is_open:
                return trip
        return None

    def start_trip(self, vehicle_id: str, now: datetime, start_km: float = 0.0) -> Trip:
        if self.current_trip() is not None:
            raise InvalidState("A trip is already in progress")
        return self.add_trip(Trip(vehicle_id=vehicle_id, start_datetime=to_instant(now, "now"), start_km=start_km))

    def end_trip(self, now: datetime, end_km: float | None = None) -> Trip:
        trip = self.current_trip()
        if trip is None:
            raise InvalidState("No trip in progress")
        now = to_instant(now, "now")
        if now < trip.start_datetime:
            raise ValidationError("Trip cannot end before it started")
        trip.end_datetime = now
        trip.end_km = end_km
        return trip

    def resolve(self, trip_id: str | None) -> tuple[Trip | None, Vehicle | None]:
        """Trip and vehicle for a timer's trip reference; either may be None."""
        trip = self._trips.get(trip_id) if trip_id else None
        vehicle = self._vehicles.get(trip.vehicle_id) if trip else None
        return trip, vehicle
