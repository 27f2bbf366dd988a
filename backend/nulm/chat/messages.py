"""Outbound event names and the system notices sent to participants."""

# Outbound event types
SET_NICKNAME = "set-nickname"
WAIT_STATE = "wait-state"
CHAT_READY = "chat-ready"
CHAT_MESSAGE = "chat-message"
CHAT_END = "chat-end"
WARNING_MESSAGE = "warning-message"
BAN = "ban"
SESSION_EXPIRED = "session-expired"
SYSTEM_MESSAGE = "system-message"

SYSTEM = "system"
ERROR = "error"

# Entering / matching
SEARCHING = "Looking for someone to chat with.\nPlease wait a moment."
CHAT_READY_TEMPLATE = "You are now chatting with {partner}."
POLICY_WARNING = (
    "Please report anyone who asks for money or personal information. "
    "Messages reported for violating the operating policy may lead to "
    "restricted use."
)
BANNED = "Your access to this service has been restricted. Please contact an administrator."
SESSION_EXPIRED_NOTICE = "Your session has expired and the connection was closed."

# Restart / disconnect
PARTNER_LEFT_SEARCHING = "Your partner has left the chat.\nLooking for a new partner."
PARTNER_LEFT_RECONNECTING = "Your partner has left the chat.\nPlease wait while we reconnect you."
RESTART_SEARCHING = "You left the chat. Looking for a new partner."
PLEASE_WAIT = "Please wait a moment."

# Reports
REPORT_ACCEPTED = "Your report has been received and the chat was closed."
PARTNER_ENDED = "Your partner has ended the chat."
SEARCHING_AGAIN = "Please wait a moment.\nLooking for a new partner."
NO_ROOM_TO_REPORT = "There is no chat room to report."
NO_PARTNER_TO_REPORT = "Could not find your chat partner."
UNKNOWN_EVENT = "Unknown event: {event}"
