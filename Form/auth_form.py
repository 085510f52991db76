from flask_wtf import FlaskForm
from wtforms import BooleanField, PasswordField, StringField
from wtforms.validators import Email, InputRequired, Length, Optional


class RegisterForm(FlaskForm):
    class Meta:
        csrf = False

    name = StringField("Name", validators=[InputRequired(), Length(min=2, max=120)])
    email = StringField("Email", validators=[InputRequired(), Email(), Length(max=120)])
    password = PasswordField("Password", validators=[InputRequired(), Length(min=6)])
    cpf = StringField("CPF", validators=[Optional(), Length(max=20)])


class LoginForm(FlaskForm):
    class Meta:
        csrf = False

    email = StringField("Email", validators=[InputRequired(), Email()])
    password = PasswordField("Password", validators=[InputRequired()])
    remember_me = BooleanField("Remember me")
