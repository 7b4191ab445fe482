from datetime import datetime, timedelta, timezone

import pytest

from lenkzeit.errors import InvalidState, ValidationError
from lenkzeit.registry import TripRegistry, Vehicle, vehicle_plate

T0 = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)


def make_registry() -> tuple[TripRegistry, Vehicle]:
    vehicle = Vehicle(name="Actros", plate="B-TR 1234")
    return TripRegistry(vehicles=[vehicle]), vehicle


def test_resolve_trip_and_vehicle() -> None:
    registry, vehicle = make_registry()
    trip = registry.start_trip(vehicle.id, T0)
    assert registry.resolve(trip.id) == (trip, vehicle)


def test_resolve_unknown_trip() -> None:
    registry, _ = make_registry()
    assert registry.resolve("missing") == (None, None)
    assert registry.resolve(None) == (None, None)


def test_vehicle_plate_fallback() -> None:
    assert vehicle_plate(None) == "Unbekannt"
    assert vehicle_plate(Vehicle(name="Old", plate="")) == "Unbekannt"
    assert vehicle_plate(Vehicle(name="Actros", plate="B-TR 1234")) == "B-TR 1234"


def test_only_one_open_trip() -> None:
    registry, vehicle = make_registry()
    registry.start_trip(vehicle.id, T0)
    with pytest.raises(InvalidState):
        registry.start_trip(vehicle.id, T0 + timedelta(hours=1))


def test_end_trip_frees_current() -> None:
    registry, vehicle = make_registry()
    trip = registry.start_trip(vehicle.id, T0)
    ended = registry.end_trip(T0 + timedelta(hours=9), end_km=120950.0)
    assert ended is trip
    assert ended.end_km == 120950.0
    assert registry.current_trip() is None


def test_end_trip_without_open_trip() -> None:
    registry, _ = make_registry()
    with pytest.raises(InvalidState):
        registry.end_trip(T0)


def test_trip_needs_known_vehicle() -> None:
    registry, _ = make_registry()
    with pytest.raises(ValidationError):
        registry.start_trip("nope", T0)
