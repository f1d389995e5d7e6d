"""Global constants for the neartalk application."""

# Collection names
GROUPS = "groups"
MEMBERS = "members"
MESSAGES = "messages"
TYPING = "typing"
USERS = "users"
JOINED_GROUPS = "joinedGroups"

# Discovery
DISCOVERY_RADIUS_KM = 5.0
EARTH_RADIUS_KM = 6371.0
GLOBAL_SEARCH_DEFAULT_LIMIT = 20

# Field limits
GROUP_NAME_MAX_LENGTH = 60
NICKNAME_MAX_LENGTH = 30
MESSAGE_MAX_LENGTH = 1000
LAST_MESSAGE_MAX_LENGTH = 60
ELLIPSIS = "…"

DEFAULT_NICKNAME = "Anonymous"
DEFAULT_GROUP_NAME = "Unnamed Group"

# Chat view behaviour
TYPING_IDLE_SECONDS = 2.0
AUTO_SCROLL_THRESHOLD_PX = 120

# External services
IP_GEOLOCATION_URL = "https://ipapi.co/json/"
IP_GEOLOCATION_TIMEOUT_SECONDS = 5.0
AVATAR_BASE_URL = "https://api.dicebear.com/7.x"
AVATAR_BACKGROUNDS = "b6e3f4,c0aede,d1f4cc,ffdfbf,ffd5dc"
AVATAR_STYLES = (
    "adventurer",
    "avataaars",
    "bottts",
    "fun-emoji",
    "lorelei",
    "notionists",
    "open-peeps",
    "personas",
)
DEFAULT_AVATAR_STYLE = "bottts"
