"""
Location obfuscation applied before coordinates leave the server.

Two stages, both pure:

1. `snap_to_accuracy` rounds a location to a grid as coarse as the precision the
   user chose to share, and raises the reported accuracy to match.
2. `LocationObfuscator.jiggle` spreads users that land in the same coarse cell
   evenly on a circle, so snapped users never render as one stacked point.

Snapping already discards precision; an observer averaging jiggled points only
recovers the grid-cell center. This is obfuscation against trivial grid-center
reads, not a differential privacy mechanism.
"""
import math
from collections.abc import Sequence
from dataclasses import dataclass

from schemas.user import Location, TrackedUser

# Flat-earth approximation of meters per degree of latitude
METERS_PER_DEGREE = 111_320

DEFAULT_GRID_STEP_DEGREES = 0.04  # ~4.4 km
DEFAULT_OFFSET_FRACTION = 0.5


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _wrap_longitude(longitude: float) -> float:
    """Bring a longitude back into [-180, 180]."""
    if -180.0 <= longitude <= 180.0:
        return longitude
    return (longitude + 180.0) % 360.0 - 180.0


def snap_to_accuracy(location: Location) -> Location:
    """
    Round coordinates to the user's desired accuracy.

    A missing or non-positive desired accuracy leaves the location untouched.
    Otherwise coordinates snap to a grid of `desired_accuracy` meters and the
    accuracy becomes `max(accuracy, desired_accuracy)`.
    """
    desired = location.desired_accuracy or 0
    if desired <= 0:
        return location

    step = desired / METERS_PER_DEGREE
    latitude = _round_half_up(location.latitude / step) * step
    longitude = _round_half_up(location.longitude / step) * step
    return location.model_copy(
        update={
            "latitude": max(-90.0, min(90.0, latitude)),
            "longitude": max(-180.0, min(180.0, longitude)),
            "accuracy": max(location.accuracy, desired),
        },
    )


def snap_user(user: TrackedUser) -> TrackedUser:
    """Apply `snap_to_accuracy` to a user's location, if any."""
    if user.location is None:
        return user
    return user.model_copy(update={"location": snap_to_accuracy(user.location)})


@dataclass(frozen=True)
class LocationObfuscator:
    """
    Deterministic circular displacement of co-located users.

    Users are bucketed by a grid of `grid_step_degrees`. Within a bucket of n
    users, member i (in input order) is pushed `accuracy * offset_fraction`
    meters away at angle 2*pi*i/n. A bucket of one is still displaced, at 0
    radians (due north).
    """

    grid_step_degrees: float = DEFAULT_GRID_STEP_DEGREES
    offset_fraction: float = DEFAULT_OFFSET_FRACTION

    def cell_key(self, location: Location) -> tuple[int, int]:
        """Grid cell index; equal keys mean equal `round(x / step) * step` centers."""
        return (
            _round_half_up(location.latitude / self.grid_step_degrees),
            _round_half_up(location.longitude / self.grid_step_degrees),
        )

    def displace(self, location: Location, angle: float) -> Location:
        """
        Move a location by `accuracy * offset_fraction` meters at `angle` radians.

        Latitude is clamped at the poles and longitude wraps across the
        antimeridian, so the result is always a valid coordinate.
        """
        offset = location.accuracy * self.offset_fraction
        d_lat = offset * math.cos(angle) / METERS_PER_DEGREE
        d_lon = offset * math.sin(angle) / (
            METERS_PER_DEGREE * math.cos(math.radians(location.latitude))
        )
        return location.model_copy(
            update={
                "latitude": max(-90.0, min(90.0, location.latitude + d_lat)),
                "longitude": _wrap_longitude(location.longitude + d_lon),
            },
        )

    def jiggle(self, users: Sequence[TrackedUser]) -> list[TrackedUser]:
        """
        Spread users sharing a grid cell evenly around their own positions.

        Users without a location pass through unchanged, and the output keeps
        the input order.
        """
        buckets: dict[tuple[int, int], list[int]] = {}
        for index, user in enumerate(users):
            if user.location is not None:
                buckets.setdefault(self.cell_key(user.location), []).append(index)

        result = list(users)
        for members in buckets.values():
            n = len(members)
            for i, index in enumerate(members):
                user = users[index]
                angle = 2 * math.pi * i / n
                result[index] = user.model_copy(
                    update={"location": self.displace(user.location, angle)},
                )
        return result
