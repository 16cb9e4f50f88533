"""Global constants for the trailsync application."""

# Firestore collections
GROUPS_COLLECTION = "groups"
MEMBER_LOCATIONS_COLLECTION = "memberLocations"

# Fields of a group document
GROUP_ID = "id"
GROUP_NAME = "name"
GROUP_MEMBERS = "members"
GROUP_LEADER_ID = "leaderId"
GROUP_CREATED_AT = "createdAt"
GROUP_UPDATED_AT = "updatedAt"

# Fields of a member location document
LOCATION_USER_ID = "userId"
LOCATION_LATITUDE = "latitude"
LOCATION_LONGITUDE = "longitude"
LOCATION_TIMESTAMP = "timestamp"

# Location sharing
DEFAULT_DEBOUNCE_SECONDS = 15.0
DEFAULT_DISTANCE_FILTER_METERS = 10.0
DEFAULT_STALE_AFTER_SECONDS = 300

# Remote store
DEFAULT_STORE_TIMEOUT_SECONDS = 10.0

# Geo
EARTH_RADIUS_METERS = 6_371_000.0
MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0
