"""User, driver and rider profiles."""

from officemate.profile.route_preferences import RoutePreferences, RoutePreferenceStore
from officemate.profile.service import DriverProfileService, RiderProfileService, UserProfileService

__all__ = [
    "DriverProfileService",
    "RiderProfileService",
    "RoutePreferenceStore",
    "RoutePreferences",
    "UserProfileService",
]
