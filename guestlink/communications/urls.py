COMMUNICATIONS_URL = "/api/v1/admin/events/{event_id}/communications"

SEND_URL = f"{COMMUNICATIONS_URL}/send"
SEND_BULK_URL = f"{COMMUNICATIONS_URL}/send-bulk"
PROVIDERS_URL = f"{COMMUNICATIONS_URL}/providers"
VERIFY_PROVIDERS_URL = f"{COMMUNICATIONS_URL}/providers/verify"
STATS_URL = f"{COMMUNICATIONS_URL}/stats"
LOGS_URL = f"{COMMUNICATIONS_URL}/logs"
STATUS_UPDATE_URL = f"{COMMUNICATIONS_URL}/status"
MESSAGE_STATUS_URL = f"{COMMUNICATIONS_URL}/messages/{{message_id}}"
