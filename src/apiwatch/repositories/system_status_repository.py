# src/apiwatch/repositories/system_status_repository.py
from typing import Any, Optional

from sqlalchemy.orm import Session
from apiwatch.models.system_status import SystemStatus


class SystemStatusRepository:
    @staticmethod
    def create(db: Session, **fields: Any) -> SystemStatus:
        snapshot = SystemStatus(**fields)
        db.add(snapshot)
        db.commit()
        db.refresh(snapshot)
        return snapshot

    @staticmethod
    def latest(db: Session) -> Optional[SystemStatus]:
        return db.query(SystemStatus).order_by(SystemStatus.timestamp.desc()).first()
