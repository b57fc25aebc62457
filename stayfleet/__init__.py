"""StayFleet reservation core for hotels and yachts."""

__version__ = "0.1.0"
