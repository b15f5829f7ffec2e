from .base import Base, db


class GeostoreAlias(Base):
    """Legacy geostore ids pointing at the current content hash.

    Rows are written by migration scripts only.
    """

    __tablename__ = "geostore_aliases"
    old_id = db.Column(db.TEXT, primary_key=True)
    hash = db.Column(db.TEXT, nullable=False)
