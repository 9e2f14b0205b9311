import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from sensorwatch import config
from sensorwatch.backend.database import Base, engine, get_db
from sensorwatch.backend.migrations import run_migrations
from sensorwatch.backend.models import Document, utcnow
from sensorwatch.backend.query import QueryError, apply_constraints

logger = logging.getLogger(__name__)

# Fields the service owns; clients cannot write them
RESERVED_FIELDS = ("id", "createdAt", "updatedAt")


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    run_migrations()
    yield


app = FastAPI(
    title="SensorWatch Document API",
    description="JSON document store backing the SensorWatch dashboard",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware to allow frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict to your frontend domain
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class Constraint(BaseModel):
    type: Literal["where", "orderBy", "limit"]
    field: Optional[str] = None
    op: Optional[str] = None
    value: Any = None
    direction: Literal["asc", "desc"] = "asc"
    count: Optional[int] = Field(None, gt=0)


class QueryRequest(BaseModel):
    collection: str = Field(..., min_length=1)
    constraints: List[Constraint] = Field(default_factory=list)


class CreatedResponse(BaseModel):
    id: str


def _writable(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in fields.items() if key not in RESERVED_FIELDS}


def _find(db: Session, collection: str, doc_id: str) -> Optional[Document]:
    return db.query(Document).filter(
        Document.collection == collection,
        Document.doc_id == doc_id,
    ).first()


@app.get("/")
def read_root():
    """API health check endpoint."""
    return {
        "status": "ok",
        "service": "SensorWatch Document API",
        "version": "1.0.0"
    }


@app.post("/api/query")
def run_query(request: QueryRequest, db: Session = Depends(get_db)):
    """
    Query a collection.

    Body:
    - collection: collection name or nested path (``devices/<id>/readings``)
    - constraints: ordered list of where / orderBy / limit constraints;
      an empty list returns the whole collection
    """
    documents = db.query(Document).filter(
        Document.collection == request.collection
    ).order_by(Document.pk).all()
    records = [document.to_record() for document in documents]

    try:
        return apply_constraints(records, [c.model_dump() for c in request.constraints])
    except QueryError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/documents", response_model=CreatedResponse)
def create_document(
    collection: str = Query(..., min_length=1),
    fields: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db)
):
    """Store a new document; the id and both timestamps are assigned here."""
    now = utcnow()
    document = Document(
        collection=collection,
        doc_id=uuid.uuid4().hex,
        created_at=now,
        updated_at=now,
        data=_writable(fields),
    )

    db.add(document)
    db.commit()
    db.refresh(document)

    return {"id": document.doc_id}


@app.get("/api/documents/{doc_id}")
def get_document(doc_id: str, collection: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    document = _find(db, collection, doc_id)

    if not document:
        raise HTTPException(status_code=404, detail="Document not found")

    return document.to_record()


@app.patch("/api/documents/{doc_id}")
def update_document(
    doc_id: str,
    collection: str = Query(..., min_length=1),
    fields: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db)
):
    """Merge the given top-level fields into the document; others are untouched."""
    document = _find(db, collection, doc_id)

    if not document:
        raise HTTPException(status_code=404, detail="Document not found")

    # Reassign so the JSON column is flagged dirty
    document.data = {**document.data, **_writable(fields)}
    document.updated_at = utcnow()
    db.commit()

    return {"status": "updated", "id": doc_id}


@app.delete("/api/documents/{doc_id}")
def delete_document(doc_id: str, collection: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """
    Delete a document.
    """
    document = _find(db, collection, doc_id)

    if not document:
        raise HTTPException(status_code=404, detail="Document not found")

    db.delete(document)
    db.commit()

    return {"status": "deleted", "id": doc_id}


def main():
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host=config.BACKEND_HOST, port=config.BACKEND_PORT)


if __name__ == "__main__":
    main()
