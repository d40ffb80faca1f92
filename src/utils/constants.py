from enum import Enum

STATE_KEYS = [
    "location",
    "nearby_groups",
    "nearby_degraded",
    "nearby_stale",
    "discovery_session",
    "location_gate",
    "active_chat_id",
    "active_chat_name",
    "synchronizers",
    "current_user",
    "send_error",
]

TEMP_MESSAGE_ID_PREFIX = "temp_"
SAMPLE_GROUP_ID_PREFIX = "sample_"


class StorageKeys(Enum):
    DEVICE_ID = "device_id"
    ONBOARDING_COMPLETE = "onboarding_complete"
    JOINED_CHATS = "joined_chats"
    VISITED_CHATS = "visited_chats"
    NEARBY_GROUPS_CACHE = "nearby_groups_cache"


class Tables(Enum):
    CHAT_GROUPS = "chat_groups"
    MESSAGES = "messages"
    CURRENT_MESSAGES = "current_messages"
    ANONYMOUS_USERS = "anonymous_users"
    USERS = "users"


class Rpc(Enum):
    CHECK_MESSAGE_RATE_LIMIT = "check_message_rate_limit"
    VOTE_ON_POLL = "vote_on_poll"
    GET_POLL_RESULTS = "get_poll_results"


class DiscoveryConstants(Enum):
    DEFAULT_RADIUS_KM = 5.0
    FETCH_LIMIT = 100
    DISPLAY_CAP = 50
    TIMEOUT_SECONDS = 8.0
    SIMPLIFIED_COLUMNS = (
        "id,name,description,creator_id,lat,lng,created_at,last_activity,is_active"
    )
    # (name, description, fraction of radius, bearing in degrees)
    SAMPLE_GROUPS = [
        ("Coffee Corner", "Sample chat while the live service is unreachable", 0.2, 45.0),
        ("Park Hangout", "Sample chat while the live service is unreachable", 0.4, 165.0),
        ("Campus Commons", "Sample chat while the live service is unreachable", 0.6, 285.0),
    ]


class ErrorMessages(Enum):
    EMPTY_MESSAGE = "Message cannot be empty"
    MESSAGE_TOO_LONG = "Message too long (max {max_length} characters)"
    NOT_JOINED_SEND = "You must join this chat before sending messages"
    NOT_JOINED_VIEW = "You must join this chat before viewing messages"
    RATE_LIMIT_CHECK_FAILED = "Rate limit check failed"
    RATE_LIMITED = "Rate limit exceeded. Please wait before sending another message."
    DUPLICATE_MESSAGE = "Duplicate message detected"
    INVALID_REFERENCE = "Invalid chat or user reference"
    SEND_FAILED = "Failed to send message"
    LOAD_FAILED = "Failed to load messages"
    REALTIME_LOST = "Real-time connection lost"


class Label(Enum):
    EMAIL = "Email"
    PASSWORD = "Password"
    LATITUDE = "Latitude"
    LONGITUDE = "Longitude"
    RADIUS = "Radius (km)"
    JOIN_BUTTON = "Join chat"
    OPEN_BUTTON = "Open"
    LEAVE_BUTTON = "Leave"


class Pages(Enum):
    DISCOVER = {
        "key": "discover",
        "title": ":material/map: Discover",
    }
    CHATS = {
        "key": "chats",
        "title": ":material/forum: Chats",
    }
    ACCOUNT = {
        "key": "account",
        "title": ":material/person: Account",
    }
