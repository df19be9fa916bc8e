"""SQLAlchemy models for database."""
from sqlalchemy import Column, String, Boolean, DateTime, Text, JSON
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()


class SyncRun(Base):
    """Run de synchronisation terminé (historique)."""
    __tablename__ = "sync_runs"

    id = Column(String, primary_key=True, index=True)  # ID de statut du run
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    finished_at = Column(DateTime, nullable=True)
    dry_run = Column(Boolean, default=False, nullable=False)
    phase = Column(String, nullable=False)  # complete, cancelled, failed
    message = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    summary_json = Column(JSON, default=dict)  # {collections_added, collections_updated, ...}
    errors_json = Column(JSON, default=list)  # erreurs par item/collection/bibliothèque
