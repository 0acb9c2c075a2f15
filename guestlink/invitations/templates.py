from dataclasses import dataclass

INVITATION_TEMPLATE_ID = "rsvp_invitation"


@dataclass(frozen=True)
class InvitationTemplate:
    subject: str
    html: str
    text: str


# Placeholders are filled by guestlink.delivery.templating.substitute
DEFAULT_INVITATION = InvitationTemplate(
    subject="You're Invited, {{guest_first_name}}!",
    html="""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
    </head>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
        <p>Dear {{guest_name}},</p>

        <p>We are delighted to invite you to our wedding celebration!</p>

        <p>Please let us know if you can attend by clicking the button below:</p>

        <div style="text-align: center; margin: 30px 0;">
            <a href="{{rsvp_link}}" style="background-color: #d4a373; color: white; padding: 15px 30px; text-decoration: none; border-radius: 5px; font-size: 18px;">
                RSVP Now
            </a>
        </div>

        <p>If the button doesn't work, you can copy and paste the following link into your browser:</p>
        <p style="word-break: break-all; color: #606c38;"><a href="{{rsvp_link}}">{{rsvp_link}}</a></p>

        <p style="font-size: 12px; color: #888;">This link is personal, please do not forward it.</p>
    </body>
    </html>
    """,
    text="""
    Dear {{guest_name}},

    We are delighted to invite you to our wedding celebration!

    Please let us know if you can attend by visiting:
    {{rsvp_link}}

    This link is personal, please do not forward it.
    """,
)
