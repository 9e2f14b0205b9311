from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint

from sensorwatch.backend.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Document(Base):
    """A JSON document addressed by (collection, doc_id)."""

    __tablename__ = "documents"
    __table_args__ = (UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),)

    pk = Column(Integer, primary_key=True)
    collection = Column(String, index=True, nullable=False)  # May be a nested path: devices/<id>/readings
    doc_id = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    data = Column(JSON, nullable=False)

    def to_record(self):
        """Wire format: the stored fields plus id and server timestamps."""
        return {
            **self.data,
            "id": self.doc_id,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Document(collection={self.collection}, id={self.doc_id})>"


def _isoformat(value):
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
