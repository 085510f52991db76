from flask_wtf import FlaskForm
from wtforms import BooleanField, FloatField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange, Optional

from util.constant import PLAN_INTERVALS


class PlanForm(FlaskForm):
    class Meta:
        csrf = False

    name = StringField("Name", validators=[DataRequired(), Length(max=120)])
    description = TextAreaField("Description", validators=[Optional()])
    price_per_server = FloatField("Price per server", validators=[DataRequired(), NumberRange(min=0)])
    interval = SelectField("Interval", choices=[(i, i) for i in PLAN_INTERVALS], default="monthly")
    is_active = BooleanField("Active", default=True)
    is_popular = BooleanField("Popular")
