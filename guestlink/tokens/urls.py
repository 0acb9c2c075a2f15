VALIDATE_TOKEN_URL = "/api/v1/rsvp/validate"
MARK_TOKEN_USED_URL = "/api/v1/rsvp/mark-used"

ISSUE_TOKENS_URL = "/api/v1/admin/events/{event_id}/tokens"
EVENT_TOKENS_URL = "/api/v1/admin/events/{event_id}/tokens"
REGENERATE_TOKEN_URL = "/api/v1/admin/guests/{guest_id}/token/regenerate"
REVOKE_TOKEN_URL = "/api/v1/admin/tokens/revoke"
CLEANUP_TOKENS_URL = "/api/v1/admin/tokens/cleanup"
TOKEN_STATS_URL = "/api/v1/admin/tokens/stats"
GUEST_TOKENS_URL = "/api/v1/admin/guests/{guest_id}/tokens"
