import re
from collections.abc import Mapping

from guestlink.guests.dtos import GuestContext

VARIABLE_PATTERN = re.compile(r"\{\{\s*([a-zA-Z0-9_]+)\s*\}\}")


def substitute(content: str | None, variables: Mapping[str, object]) -> str | None:
    """Replace {{ name }} placeholders. Unknown names are left as they are."""
    if content is None:
        return None

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in variables or variables[name] is None:
            return match.group(0)
        return str(variables[name])

    return VARIABLE_PATTERN.sub(replace, content)


def guest_variables(guest: GuestContext, rsvp_link: str | None = None) -> dict[str, str]:
    variables = {
        "guest_name": guest.full_name,
        "guest_first_name": guest.first_name or "",
        "guest_last_name": guest.last_name or "",
        "guest_email": guest.email or "[Email not provided]",
        "guest_phone": guest.phone or "[Phone not provided]",
    }
    if rsvp_link:
        variables["rsvp_link"] = rsvp_link
    return variables
