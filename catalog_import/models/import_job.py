"""Import job and row models for staged catalog imports."""
import enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from catalog_import.database import Base


class SourceType(str, enum.Enum):
    DELIMITED = "delimited"
    SPREADSHEET = "spreadsheet"
    DOCUMENT = "document"


class JobStatus(str, enum.Enum):
    STAGED = "STAGED"
    COMMITTED = "COMMITTED"
    UNDONE = "UNDONE"
    FAILED = "FAILED"


class RowStatus(str, enum.Enum):
    READY = "READY"
    ERROR = "ERROR"
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class ImportJob(Base):
    """One parsed import batch awaiting review, committed, undone or failed."""

    __tablename__ = "import_jobs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    source_type = Column(Enum(SourceType, native_enum=False), nullable=False)
    status = Column(
        Enum(JobStatus, native_enum=False), nullable=False, default=JobStatus.STAGED
    )
    checksum = Column(String(64), nullable=False)
    filename = Column(String(500), nullable=True)
    file_size = Column(Integer, nullable=True)
    mapping = Column(JSON, nullable=True)
    totals = Column(JSON, nullable=True)
    report = Column(JSON, nullable=True)
    warnings = Column(JSON, nullable=True)
    errors = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )
    committed_at = Column(DateTime, nullable=True)
    undone_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)

    rows = relationship(
        "ImportRow",
        back_populates="job",
        order_by="ImportRow.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<ImportJob(id={self.id}, source={self.source_type}, status={self.status})>"


class ImportRow(Base):
    """One staged candidate variant within an import job."""

    __tablename__ = "import_rows"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(
        Uuid(as_uuid=True), ForeignKey("import_jobs.id"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False)
    row_key = Column(String(100), nullable=False)
    status = Column(
        Enum(RowStatus, native_enum=False), nullable=False, default=RowStatus.READY
    )
    sku = Column(String(255), nullable=True)
    product_key = Column(String(1000), nullable=True, index=True)
    needs_review = Column(Boolean, default=False, nullable=False)
    confidence = Column(Float, nullable=True)
    data = Column(JSON, nullable=False)
    issues = Column(JSON, nullable=True)

    job = relationship("ImportJob", back_populates="rows")

    def __repr__(self):
        return f"<ImportRow(id={self.id}, key='{self.row_key}', status={self.status})>"
