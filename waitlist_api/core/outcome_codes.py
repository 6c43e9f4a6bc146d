from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_PAYLOAD = "invalid_payload"
    RATE_LIMITED = "rate_limited"


class OutcomeMessage(StrEnum):
    JOINED = "You are on the waitlist."
    BOT_ACCEPTED = "Thanks for your interest."
    INVALID_PAYLOAD = "Please submit a valid email address."
    RATE_LIMITED = "Rate limit reached. Please try again tomorrow."
