from datetime import datetime

from sqlalchemy.dialects.postgresql import ARRAY, DOUBLE_PRECISION, JSONB, TEXT
from sqlalchemy_utils import generic_repr

from ...application import db

db.JSONB, db.ARRAY, db.TEXT, db.DOUBLE_PRECISION = (
    JSONB,
    ARRAY,
    TEXT,
    DOUBLE_PRECISION,
)


@generic_repr
class Base(db.Model):  # type: ignore
    __abstract__ = True
    created_on = db.Column(
        db.DateTime, default=datetime.utcnow, server_default=db.func.now()
    )
    updated_on = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        server_default=db.func.now(),
    )
