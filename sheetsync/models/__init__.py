"""
SQLAlchemy models and shared enums.
All model and enum definitions live here for simplicity and to avoid circular imports.
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Enum as SQLEnum, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sheetsync.database import Base
import enum
import uuid

# Enums
class ChannelKind(str, enum.Enum):
    """The two fixed sync channels, keyed by the order type they feed."""
    NEW = "new"
    ABANDONED = "abandoned"

class ValidationStatus(str, enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    VALID = "valid"
    INVALID = "invalid"

class SyncPhase(str, enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    STAGED = "staged"
    COMMITTING = "committing"

class SyncRunType(str, enum.Enum):
    FETCH = "FETCH"
    COMMIT = "COMMIT"
    AUTO = "AUTO"

class SyncRunStatus(str, enum.Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    EMPTY = "EMPTY"
    FAILED = "FAILED"

class LogLevel(str, enum.Enum):
    INFO = "INFO"
    ERROR = "ERROR"

# Models
class SheetSyncRun(Base):
    __tablename__ = "sheet_sync_runs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column("account_id", String, nullable=False, index=True)
    channel = Column(SQLEnum(ChannelKind), nullable=False)
    config_id = Column("config_id", String, nullable=True)
    run_type = Column("run_type", SQLEnum(SyncRunType), nullable=False)
    status = Column(SQLEnum(SyncRunStatus), default=SyncRunStatus.RUNNING)
    start_row = Column("start_row", Integer, nullable=False)
    rows_count = Column("rows_count", Integer, default=0)
    cursor_before = Column("cursor_before", Integer, nullable=False)
    cursor_after = Column("cursor_after", Integer, nullable=True)
    error_message = Column("error_message", String, nullable=True)
    started_at = Column("started_at", DateTime, nullable=True)
    finished_at = Column("finished_at", DateTime, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())

    logs = relationship("SheetSyncLog", back_populates="sync_run", cascade="all, delete-orphan")

class SheetSyncLog(Base):
    __tablename__ = "sheet_sync_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    sync_run_id = Column("sync_run_id", String, ForeignKey("sheet_sync_runs.id", ondelete="CASCADE"), nullable=False)
    level = Column(SQLEnum(LogLevel), nullable=False)
    message = Column(String, nullable=False)
    raw_payload = Column("raw_payload", JSON, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())

    sync_run = relationship("SheetSyncRun", back_populates="logs")
