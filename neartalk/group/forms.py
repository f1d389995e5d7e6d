"""Forms for the group blueprint."""

from flask_wtf import FlaskForm
from wtforms import SelectField, StringField
from wtforms.validators import DataRequired, Length, Optional

from neartalk.constants import (
    AVATAR_STYLES,
    DEFAULT_AVATAR_STYLE,
    GROUP_NAME_MAX_LENGTH,
    NICKNAME_MAX_LENGTH,
)
from neartalk.utils import strip_filter


class CreateGroupForm(FlaskForm):
    """Form for creating a new group at the caller's position."""

    name = StringField(
        "Group Name",
        validators=[
            DataRequired(message="Please enter a group name."),
            Length(
                max=GROUP_NAME_MAX_LENGTH,
                message=f"Group name must be at most {GROUP_NAME_MAX_LENGTH} characters.",
            ),
        ],
        filters=[strip_filter],
    )
    nickname = StringField(
        "Nickname",
        validators=[
            DataRequired(message="Please enter a nickname."),
            Length(
                max=NICKNAME_MAX_LENGTH,
                message=f"Nickname must be at most {NICKNAME_MAX_LENGTH} characters.",
            ),
        ],
        filters=[strip_filter],
    )
    avatar_style = SelectField(
        "Avatar",
        choices=list(AVATAR_STYLES),
        default=DEFAULT_AVATAR_STYLE,
        validate_choice=True,
    )
    # Coordinates arrive as JSON numbers or query-style strings; they are
    # parsed by the route so a bad value means "no location", not a 400.
    latitude = StringField("Latitude", validators=[Optional()])
    longitude = StringField("Longitude", validators=[Optional()])
    accuracy = StringField("Accuracy", validators=[Optional()])


class JoinGroupForm(FlaskForm):
    """Form for joining a group under a nickname."""

    nickname = StringField(
        "Nickname",
        validators=[
            DataRequired(message="Please enter a nickname."),
            Length(
                max=NICKNAME_MAX_LENGTH,
                message=f"Nickname must be at most {NICKNAME_MAX_LENGTH} characters.",
            ),
        ],
        filters=[strip_filter],
    )
