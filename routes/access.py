from flask import abort
from flask_login import current_user

from database_init import db


def scoped(model):
    """Query over *model* limited to the current user's rows unless admin."""
    query = model.query
    if not current_user.is_admin:
        query = query.filter(model.user_id == current_user.id)
    return query


def get_owned_or_404(model, record_id):
    record = db.session.get(model, record_id)
    if record is None:
        abort(404)
    if not current_user.is_admin and record.user_id != current_user.id:
        abort(404)
    return record


def require_admin():
    if not current_user.is_admin:
        abort(403)
