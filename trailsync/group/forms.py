"""Forms for the group blueprint."""

from flask_wtf import FlaskForm
from wtforms import FloatField, StringField
from wtforms.validators import DataRequired, Length, NumberRange
from wtforms.validators import ValidationError as FormValidationError

from trailsync.location.geo import validate_group_name


class ApiForm(FlaskForm):
    """Base form for the token-authenticated JSON API."""

    class Meta:
        csrf = False

    def first_error(self):
        """Return the first validation message, prefixed by its field name."""
        for name, messages in self.errors.items():
            if messages:
                return f"{name}: {messages[0]}"
        return "Invalid request."


class CreateGroupForm(ApiForm):
    """Form for creating a new group."""

    name = StringField("Group Name", validators=[DataRequired()])

    def validate_name(self, field):
        """Allow 2-30 letters, digits, spaces or hyphens."""
        if not validate_group_name(str(field.data).strip()):
            raise FormValidationError(
                "Use 2-30 letters, digits, spaces or hyphens."
            )


class JoinGroupForm(ApiForm):
    """Form for joining an existing group."""

    group_id = StringField("Group ID", validators=[DataRequired(), Length(max=128)])


class LocationForm(ApiForm):
    """Form for a location sample."""

    latitude = FloatField("Latitude", validators=[NumberRange(min=-90, max=90)])
    longitude = FloatField("Longitude", validators=[NumberRange(min=-180, max=180)])
