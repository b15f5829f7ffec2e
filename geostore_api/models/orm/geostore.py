from .base import Base, db


class Geostore(Base):
    __tablename__ = "geostore"

    hash = db.Column(db.TEXT, primary_key=True)
    geojson = db.Column(db.JSONB, nullable=False)
    area_ha = db.Column(db.DOUBLE_PRECISION)
    bbox = db.Column(db.ARRAY(db.DOUBLE_PRECISION))
    info = db.Column(db.JSONB, nullable=False, server_default="{}")
    provider = db.Column(db.JSONB, nullable=False, server_default="{}")
    lock = db.Column(db.Boolean, nullable=False, server_default="false")

    _geostore_info_idx = db.Index(
        "geostore_info_idx", "info", postgresql_using="gin"
    )
