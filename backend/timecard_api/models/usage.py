import uuid
from sqlalchemy import UniqueConstraint
from ..extensions import db
from ..utils import utc_now


class DailyUsage(db.Model):
    __tablename__ = 'daily_usage'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    identity_key = db.Column(db.Text, nullable=False)
    is_guest = db.Column(db.Boolean, nullable=False, default=True)
    usage_date = db.Column(db.Date, nullable=False)
    count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint('identity_key', 'usage_date', name='uq_daily_usage_identity_date'),
    )
