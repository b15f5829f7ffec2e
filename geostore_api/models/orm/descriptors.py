from .base import Base, db


class GeostoreDescriptor(Base):
    """Descriptors answered by a geostore whose own info belongs to another
    descriptor."""

    __tablename__ = "geostore_descriptors"
    descriptor = db.Column(db.JSONB, primary_key=True)
    hash = db.Column(db.TEXT, db.ForeignKey("geostore.hash"), nullable=False)
