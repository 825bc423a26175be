"""Exceptions raised to callers of the planner.

The optimizer itself never raises for geometric trouble (degenerate boundaries,
coincident rooms, dangling links); these errors only cover calling-layer
mistakes such as bad input files or editing a layout mid-run.
"""


class PlannerError(Exception):
    """Base class for all planner errors."""


class UnknownRoomError(PlannerError, KeyError):
    """A room id does not exist in the layout."""

    def __init__(self, room_id: str):
        super().__init__(room_id)
        self.room_id = room_id

    def __str__(self) -> str:
        return f"unknown room id: {self.room_id!r}"


class LayoutBusyError(PlannerError):
    """The layout is owned by an active optimization run."""


class InputFormatError(PlannerError):
    """A room or connectivity file could not be understood."""


class BoundaryFormatError(InputFormatError):
    """A boundary file holds no usable polygon ring."""
