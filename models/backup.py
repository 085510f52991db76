from datetime import datetime

from database_init import db
from util.constant import BACKUP_STATUS


class Backup(db.Model):
    __tablename__ = "backup"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(20), nullable=False)  # database | project
    resource_id = db.Column(db.Integer, nullable=False)
    server_id = db.Column(db.Integer, db.ForeignKey("server.id"), nullable=False)
    path = db.Column(db.String(512), nullable=True)
    size = db.Column(db.String(32), nullable=True)
    status = db.Column(db.String(20), default=BACKUP_STATUS.pending.value)
    error = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    server = db.relationship("Server")

    def __repr__(self):
        return f"<Backup {self.name} [{self.status}]>"
