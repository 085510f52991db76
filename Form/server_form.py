from flask_wtf import FlaskForm
from wtforms import IntegerField, PasswordField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange, Optional


class ServerForm(FlaskForm):
    class Meta:
        csrf = False

    name = StringField("Name", validators=[DataRequired(), Length(max=128)])
    host = StringField("Host", validators=[DataRequired(), Length(max=255)])
    port = IntegerField("SSH port", default=22, validators=[Optional(), NumberRange(1, 65535)])
    username = StringField("Username", default="root", validators=[Optional(), Length(max=128)])
    auth_type = SelectField(
        "Authentication", choices=[("password", "Password"), ("key", "Private key")],
        default="password",
    )
    password = PasswordField("Password", validators=[Optional()])
    private_key = TextAreaField("Private key", validators=[Optional()])

    def validate(self, extra_validators=None):
        if not super().validate(extra_validators):
            return False
        if self.auth_type.data == "key" and not self.private_key.data:
            self.private_key.errors.append("A private key is required for key authentication")
            return False
        return True
