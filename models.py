from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()

USER_AGENT_MAX_BYTES : int = 512


class Post(db.Model):
    __tablename__ = 'posts'

    id = db.Column(db.Integer, primary_key=True)
    post_id = db.Column(db.String(24), unique=True, nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    remote_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(USER_AGENT_MAX_BYTES), nullable=True)

    def __repr__(self) -> str:
        return f'<Post {self.post_id}>'
