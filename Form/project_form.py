from flask_wtf import FlaskForm
from wtforms import IntegerField, SelectField, StringField
from wtforms.validators import DataRequired, Length, NumberRange, Optional, Regexp

from util.constant import PROJECT_TYPES


class ProjectForm(FlaskForm):
    class Meta:
        csrf = False

    name = StringField(
        "Name",
        validators=[
            DataRequired(),
            Length(max=64),
            Regexp(r"^[a-z0-9][a-z0-9-]*$", message="Use lowercase letters, digits and dashes"),
        ],
    )
    display_name = StringField("Display name", validators=[Optional(), Length(max=255)])
    git_url = StringField("Git URL", validators=[DataRequired(), Length(max=512)])
    branch = StringField("Branch", default="main", validators=[Optional(), Length(max=128)])
    git_token = StringField("Git token", validators=[Optional()])
    type = SelectField("Type", choices=[(t, t) for t in PROJECT_TYPES], default="backend")
    port = IntegerField("Port", validators=[Optional(), NumberRange(1, 65535)])
    internal_port = IntegerField("Internal port", default=3000, validators=[Optional(), NumberRange(1, 65535)])
    domain = StringField("Domain", validators=[Optional(), Length(max=255)])
    dockerfile_template = StringField("Dockerfile template", validators=[Optional()])
    server_id = IntegerField("Server", validators=[DataRequired()])


class ProjectUpdateForm(FlaskForm):
    class Meta:
        csrf = False

    display_name = StringField("Display name", validators=[Optional(), Length(max=255)])
    git_url = StringField("Git URL", validators=[Optional(), Length(max=512)])
    branch = StringField("Branch", validators=[Optional(), Length(max=128)])
    port = IntegerField("Port", validators=[Optional(), NumberRange(1, 65535)])
    internal_port = IntegerField("Internal port", validators=[Optional(), NumberRange(1, 65535)])
    domain = StringField("Domain", validators=[Optional(), Length(max=255)])


class ExecForm(FlaskForm):
    class Meta:
        csrf = False

    command = StringField("Command", validators=[DataRequired()])
