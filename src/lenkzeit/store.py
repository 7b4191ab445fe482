"""SQLite persistence for drive timers, trips and vehicles.

The engine never reads or writes storage itself; the CLI loads a session
from here, runs one transition, and saves the result back.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from .registry import Trip, TripRegistry, Vehicle
from .timer import DriveTimer

logger = logging.getLogger(__name__)


class TimerStore:
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init(self) -> None:
        """Create the database file and tables if they do not exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            # WAL so a status read never blocks a transition write
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS vehicles (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    kennzeichen TEXT NOT NULL,
                    tankvolumen_l REAL DEFAULT 0
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS trips (
                    id TEXT PRIMARY KEY,
                    vehicle_id TEXT NOT NULL REFERENCES vehicles(id),
                    start_datetime TEXT NOT NULL,
                    end_datetime TEXT,
                    start_km REAL DEFAULT 0,
                    end_km REAL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS drive_timers (
                    id TEXT PRIMARY KEY,
                    trip_id TEXT NOT NULL,
                    start_time TEXT NOT NULL,
                    end_time TEXT,
                    pause_variant TEXT NOT NULL,
                    pauses TEXT NOT NULL DEFAULT '[]',
                    gefahrene_min_heute INTEGER DEFAULT 0,
                    is_active INTEGER DEFAULT 0
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_timers_active ON drive_timers(is_active)")
        logger.debug("Database ready at %s", self.db_path)

    # ---- Drive timers ----

    def save_timers(self, timers: Iterable[DriveTimer]) -> None:
        rows = []
        for timer in timers:
            data = timer.to_dict()
            rows.append((
                data["id"],
                data["trip_id"],
                data["start_time"],
                data["end_time"],
                data["pause_variant"],
                json.dumps(data["pauses"]),
                data["gefahrene_min_heute"],
                1 if data["is_active"] else 0,
            ))
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO drive_timers
                    (id, trip_id, start_time, end_time, pause_variant, pauses,
                     gefahrene_min_heute, is_active)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        logger.debug("Saved %d timer(s)", len(rows))

    def load_timers(self) -> list[DriveTimer]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM drive_timers ORDER BY start_time").fetchall()
        timers = []
        for row in rows:
            data = dict(row)
            data["pauses"] = json.loads(data["pauses"] or "[]")
            data["is_active"] = bool(data["is_active"])
            timers.append(DriveTimer.from_dict(data))
        return timers

    # ---- Trips and vehicles ----

    def save_vehicle(self, vehicle: Vehicle) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO vehicles (id, name, kennzeichen, tankvolumen_l) VALUES (?, ?, ?, ?)",
                (vehicle.id, vehicle.name, vehicle.plate, vehicle.tank_volume_l),
            )

    def save_trip(self, trip: Trip) -> None:
        data = trip.to_dict()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO trips
                    (id, vehicle_id, start_datetime, end_datetime, start_km, end_km)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (data["id"], data["vehicle_id"], data["start_datetime"], data["end_datetime"],
                 data["start_km"], data["end_km"]),
            )

    def load_registry(self) -> TripRegistry:
        with self._connect() as conn:
            vehicle_rows = conn.execute("SELECT * FROM vehicles").fetchall()
            trip_rows = conn.execute("SELECT * FROM trips ORDER BY start_datetime").fetchall()
        vehicles = [
            Vehicle(id=r["id"], name=r["name"], plate=r["kennzeichen"], tank_volume_l=r["tankvolumen_l"] or 0.0)
            for r in vehicle_rows
        ]
        trips = [Trip.from_dict(dict(r)) for r in trip_rows]
        return TripRegistry(vehicles=vehicles, trips=trips)
