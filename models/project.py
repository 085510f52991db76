from datetime import datetime

from database_init import db
from util.constant import PROJECT_STATUS, PROJECTS_ROOT


class Project(db.Model):
    __tablename__ = "project"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    display_name = db.Column(db.String(255))
    git_url = db.Column(db.String(512), nullable=False)
    branch = db.Column(db.String(128), default="main")
    git_token = db.Column(db.Text, nullable=True)  # encrypted, private repos
    type = db.Column(db.String(20), default="backend")
    port = db.Column(db.Integer, nullable=True)
    internal_port = db.Column(db.Integer, default=3000)
    domain = db.Column(db.String(255), nullable=True)
    env_vars = db.Column(db.JSON, default=dict)
    dockerfile_template = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(20), default=PROJECT_STATUS.inactive.value)
    current_version = db.Column(db.String(128), nullable=True)
    container_id = db.Column(db.String(128), nullable=True)
    previous_container_id = db.Column(db.String(128), nullable=True)

    server_id = db.Column(db.Integer, db.ForeignKey("server.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    server = db.relationship("Server", back_populates="projects")
    user = db.relationship("User")
    deployments = db.relationship(
        "Deployment",
        back_populates="project",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Deployment.deployed_at.desc()",
    )

    @property
    def project_dir(self):
        return f"{PROJECTS_ROOT}/{self.name}"

    def __repr__(self):
        return f"<Project {self.name} [{self.status}]>"
