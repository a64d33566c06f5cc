import uuid
from sqlalchemy import func, UniqueConstraint
from app.extensions import db

# Read-side only: upload, ordering and cover handling live in the media service.

def _uuid() -> str:
    return str(uuid.uuid4())

class AudioFile(db.Model):
    __tablename__ = "audio_files"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    artist = db.Column(db.String(255), nullable=True)
    duration = db.Column(db.Float, nullable=True)
    storage_path = db.Column(db.String(512), nullable=False)
    # Public URL from the storage bucket, set at upload time
    file_url = db.Column(db.String(1024), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

class Collection(db.Model):
    __tablename__ = "collections"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    is_public = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    tracks = db.relationship(
        "CollectionTrack",
        order_by="CollectionTrack.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Collection id={self.id!r} user_id={self.user_id} is_public={self.is_public}>"

class CollectionTrack(db.Model):
    __tablename__ = "collection_tracks"

    id = db.Column(db.Integer, primary_key=True)
    collection_id = db.Column(db.String(36), db.ForeignKey("collections.id", ondelete="CASCADE"), nullable=False, index=True)
    audio_id = db.Column(db.String(36), db.ForeignKey("audio_files.id", ondelete="CASCADE"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    audio_file = db.relationship("AudioFile", lazy="joined")

    __table_args__ = (
        UniqueConstraint("collection_id", "audio_id", name="uq_collection_tracks_collection_audio"),
    )
