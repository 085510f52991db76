from datetime import datetime

from database_init import db
from util.constant import PROVISIONING_STATUS, SERVER_STATUS


class Server(db.Model):
    __tablename__ = "server"
    __table_args__ = (db.UniqueConstraint("user_id", "name", name="uq_server_user_name"),)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    host = db.Column(db.String(255), nullable=False)
    port = db.Column(db.Integer, default=22)
    username = db.Column(db.String(128), default="root")
    auth_type = db.Column(db.String(20), default="password")  # password | key
    password = db.Column(db.Text, nullable=True)  # encrypted
    private_key = db.Column(db.Text, nullable=True)  # encrypted
    status = db.Column(db.String(20), default=SERVER_STATUS.offline.value)

    provisioning_status = db.Column(
        db.String(20), default=PROVISIONING_STATUS.pending.value
    )
    provisioning_progress = db.Column(db.Integer, default=0)
    provisioning_log = db.Column(db.Text, nullable=True)
    os_type = db.Column(db.String(50), nullable=True)
    os_version = db.Column(db.String(50), nullable=True)
    docker_installed = db.Column(db.Boolean, default=False)
    docker_compose_installed = db.Column(db.Boolean, default=False)
    git_installed = db.Column(db.Boolean, default=False)
    last_check = db.Column(db.DateTime, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    user = db.relationship("User", back_populates="servers")
    projects = db.relationship("Project", back_populates="server", lazy=True)
    databases = db.relationship("ManagedDatabase", back_populates="server", lazy=True)

    def append_provisioning_log(self, line):
        self.provisioning_log = f"{self.provisioning_log or ''}{line}\n"

    def __repr__(self):
        return f"<Server {self.name} ({self.host})>"
