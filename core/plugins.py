from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

ScannerKind = Literal["SAST", "DAST", "SCA"]


class ScanStatus(str, enum.Enum):
    PASSED = "passed"
    FAILED = "failed"   # ran, but found issues or hit a recoverable error
    FATAL = "fatal"     # did not produce a usable result


@dataclass
class ScanReport:
    scanner: str
    status: ScanStatus = ScanStatus.PASSED
    info: Dict[str, Any] = field(default_factory=dict)
    issues: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    running_time: float = 0.0
    lockfile: Optional[str] = None

    def passed(self) -> bool:
        return self.status == ScanStatus.PASSED

    def fail(self, message: Optional[str] = None, fatal: bool = False) -> None:
        if message:
            self.errors.append(message)
        self.status = ScanStatus.FATAL if fatal else ScanStatus.FAILED

    def add_issue(self, issue: Dict[str, Any]) -> None:
        self.issues.append(issue)
        if self.status == ScanStatus.PASSED:
            self.status = ScanStatus.FAILED

    def to_h(self) -> Dict[str, Any]:
        return {
            "scanner": self.scanner,
            "status": self.status.value,
            "passed": self.passed(),
            "running_time": round(self.running_time, 2),
            "info": self.info,
            "issues": self.issues,
            "errors": self.errors,
        }


class ScannerPlugin:
    name: str = "abstract"
    kind: ScannerKind = "SAST"
    lockfile: Optional[str] = None

    def validate_config(self, cfg: dict) -> None:
        pass

    def should_run(self, repo_dir: str) -> bool:
        return True

    def prepare(self, repo_dir: str, cfg: dict) -> None:
        pass

    def new_report(self) -> ScanReport:
        return ScanReport(scanner=self.name, lockfile=self.lockfile)

    def scan(self, repo_dir: str, cfg: dict) -> ScanReport:
        raise NotImplementedError
