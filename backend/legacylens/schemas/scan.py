from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, List

from ..core.records import ScanStatus


class ScanCreate(BaseModel):
    # URL shape is checked by the scan service so a bad URL maps to 400, not 422
    repoUrl: Optional[str] = None

    @field_validator('repoUrl')
    @classmethod
    def strip_repo_url(cls, v):
        return v.strip() if isinstance(v, str) else v


class ScanSubmitted(BaseModel):
    scanId: str
    status: ScanStatus = ScanStatus.SCANNING
    message: str = "Scan started successfully"
    statusUrl: str
    streamUrl: str


class ScanList(BaseModel):
    scanIds: List[str]
    total: int


class LogEntry(BaseModel):
    timestamp: int
    phase: str
    message: str


class CategoryCounts(BaseModel):
    security: int = 0
    reliability: int = 0
    maintainability: int = 0


class ScanStats(BaseModel):
    totalFiles: int = 0
    totalLines: int = 0
    languages: List[str] = Field(default_factory=list)
    frameworks: List[str] = Field(default_factory=list)
    criticalCount: int = 0
    highCount: int = 0
    mediumCount: int = 0
    lowCount: int = 0
    totalMinutes: int = 0
    totalHours: float = 0.0
    byCategory: CategoryCounts = Field(default_factory=CategoryCounts)


class Finding(BaseModel):
    id: str
    ruleId: str
    category: str
    severity: str
    eta: str
    file: str
    line: int
    snippet: str
    title: str
    explanation: str
    fix: str
    timeline: Dict[str, str]
    minutesSaved: int


class ScanRecord(BaseModel):
    id: str
    repoUrl: str
    status: ScanStatus
    findings: List[Finding] = Field(default_factory=list)
    stats: ScanStats = Field(default_factory=ScanStats)
    logs: List[LogEntry] = Field(default_factory=list)
    createdAt: int


class ScanDeleted(BaseModel):
    scanId: str
    deleted: bool = True
