"""Forms for the chat blueprint."""

from flask_wtf import FlaskForm
from wtforms import StringField
from wtforms.validators import Length

from neartalk.constants import MESSAGE_MAX_LENGTH
from neartalk.utils import strip_filter


class MessageForm(FlaskForm):
    """Form for sending a message; blank text is accepted and ignored."""

    text = StringField(
        "Message",
        validators=[
            Length(
                max=MESSAGE_MAX_LENGTH,
                message=f"Messages must be at most {MESSAGE_MAX_LENGTH} characters.",
            )
        ],
        filters=[strip_filter],
    )
