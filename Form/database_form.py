from flask_wtf import FlaskForm
from wtforms import IntegerField, SelectField, StringField
from wtforms.validators import DataRequired, Length, Optional, Regexp

from util.constant import DATABASE_TYPES


class DatabaseForm(FlaskForm):
    class Meta:
        csrf = False

    name = StringField(
        "Name",
        validators=[
            DataRequired(),
            Length(max=64),
            Regexp(r"^[a-z0-9][a-z0-9_-]*$", message="Use lowercase letters, digits, dashes and underscores"),
        ],
    )
    display_name = StringField("Display name", validators=[Optional(), Length(max=255)])
    type = SelectField("Type", choices=[(t, t) for t in DATABASE_TYPES], validators=[DataRequired()])
    version = StringField("Version", default="latest", validators=[Optional(), Length(max=50)])
    server_id = IntegerField("Server", validators=[DataRequired()])
