SEND_INVITATION_URL = "/api/v1/admin/events/{event_id}/guests/{guest_id}/invitation"
