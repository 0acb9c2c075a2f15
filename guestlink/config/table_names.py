from enum import Enum


class TableNames(str, Enum):
    GUESTS = "guests"
    RSVP_TOKENS = "rsvp_tokens"
    COMMUNICATION_RECORDS = "communication_records"
