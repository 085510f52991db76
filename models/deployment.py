from datetime import datetime

from database_init import db
from util.constant import DEPLOYMENT_STATUS


class Deployment(db.Model):
    __tablename__ = "deployment"
    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("project.id"), nullable=False)
    version = db.Column(db.String(128), nullable=True)
    branch = db.Column(db.String(128), nullable=True)
    commit = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(20), default=DEPLOYMENT_STATUS.deploying.value)
    logs = db.Column(db.Text, nullable=True)
    deployed_by = db.Column(db.String(120), nullable=True)
    container_id = db.Column(db.String(128), nullable=True)
    deployed_at = db.Column(db.DateTime, default=datetime.utcnow)

    project = db.relationship("Project", back_populates="deployments")

    def __repr__(self):
        return f"<Deployment {self.project_id}@{self.commit} [{self.status}]>"
