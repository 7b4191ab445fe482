"""EU driving-time and break compliance engine."""

from .calculator import DrivingMeasure, compute_driving_minutes, measure_driving
from .errors import InvalidState, LenkzeitError, ValidationError
from .export import ExportRecord, export_filename, parse_export, serialize
from .ledger import BreakInterval, BreakLedger
from .registry import Trip, TripRegistry, Vehicle
from .rules import PauseVariant, compute_next_break_due, is_compliant, is_reminder_due
from .timer import DashboardStats, DriveSession, DriveTimer

__version__ = "1.0.0"

__all__ = [
    "BreakInterval",
    "BreakLedger",
    "DashboardStats",
    "DriveSession",
    "DriveTimer",
    "DrivingMeasure",
    "ExportRecord",
    "InvalidState",
    "LenkzeitError",
    "PauseVariant",
    "Trip",
    "TripRegistry",
    "ValidationError",
    "Vehicle",
    "compute_driving_minutes",
    "compute_next_break_due",
    "export_filename",
    "is_compliant",
    "is_reminder_due",
    "measure_driving",
    "parse_export",
    "serialize",
]
