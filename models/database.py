from datetime import datetime

from database_init import db
from util.constant import DATABASE_STATUS


class ManagedDatabase(db.Model):
    __tablename__ = "databases"
    __table_args__ = (db.UniqueConstraint("user_id", "name", name="uq_database_user_name"),)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    display_name = db.Column(db.String(255))
    type = db.Column(db.String(20), nullable=False)
    version = db.Column(db.String(32), default="latest")
    host = db.Column(db.String(255))
    port = db.Column(db.Integer)
    username = db.Column(db.String(128))
    password = db.Column(db.Text)  # encrypted
    database_name = db.Column(db.String(128))
    container_id = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(20), default=DATABASE_STATUS.creating.value)
    connection_string = db.Column(db.Text, nullable=True)
    volume_path = db.Column(db.String(255), nullable=True)

    server_id = db.Column(db.Integer, db.ForeignKey("server.id"), nullable=False)
    # No cascade from user; NULL user_id marks an orphaned database
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    server = db.relationship("Server", back_populates="databases")
    user = db.relationship("User")

    @property
    def container_name(self):
        return f"db-{self.name}"

    def __repr__(self):
        return f"<ManagedDatabase {self.name} ({self.type})>"
