from sqlalchemy import Column, String, Text, JSON, BigInteger

from legacylens.database import Base
from legacylens.core.records import ScanStatus


class ScanRecordRow(Base):
    __tablename__ = "scan_records"

    id = Column(String(64), primary_key=True, index=True)
    repo_url = Column(Text, nullable=False)
    status = Column(String(16), default=ScanStatus.SCANNING.value, nullable=False, index=True)

    findings = Column(JSON, nullable=False, default=list)
    stats = Column(JSON, nullable=False, default=dict)
    logs = Column(JSON, nullable=False, default=list)

    # Milliseconds since the epoch
    created_at = Column(BigInteger, nullable=False)

    def to_record(self):
        return {
            "id": self.id,
            "repoUrl": self.repo_url,
            "status": self.status,
            "findings": list(self.findings or []),
            "stats": dict(self.stats or {}),
            "logs": list(self.logs or []),
            "createdAt": self.created_at,
        }

    def apply_record(self, record):
        self.status = record["status"]
        self.findings = record.get("findings", [])
        self.stats = record.get("stats", {})
        self.logs = record.get("logs", [])

    @classmethod
    def from_record(cls, record):
        row = cls(id=record["id"], repo_url=record["repoUrl"], created_at=record["createdAt"])
        row.apply_record(record)
        return row
