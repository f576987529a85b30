"""Domain models for background scraping and analysis jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

JobStatus = Literal["pending", "collecting", "fetching", "awaiting_selection", "analyzing", "completed", "failed"]
JobKind = Literal["reviews", "market_intelligence"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

# Statuses only move forward; collecting and fetching are the same stage for different job kinds.
_STATUS_RANK: dict[str, int] = {"pending": 0, "collecting": 1, "fetching": 1, "awaiting_selection": 2, "analyzing": 3, "completed": 4, "failed": 4}


def is_terminal(status: str) -> bool:
  return status in TERMINAL_STATUSES


def is_forward_transition(current: str, target: str) -> bool:
  """True when moving from current to target never goes back a stage."""
  if current == target:
    return True
  if is_terminal(current):
    return False
  return _STATUS_RANK[target] > _STATUS_RANK[current]


@dataclass
class JobProgress:
  """Progress snapshot shown while a job runs."""

  step: str
  current: int = 0
  total: int = 0
  message: str = ""

  def to_dict(self) -> dict[str, Any]:
    return {"step": self.step, "current": self.current, "total": self.total, "message": self.message}

  @classmethod
  def from_dict(cls, data: dict[str, Any] | None) -> JobProgress | None:
    if not data:
      return None
    return cls(step=str(data.get("step") or ""), current=int(data.get("current") or 0), total=int(data.get("total") or 0), message=str(data.get("message") or ""))


@dataclass
class JobRecord:
  """Represents a background reviews fetch or market-intelligence run."""

  job_id: str
  user_id: str | None
  job_kind: JobKind
  request: dict[str, Any]
  status: JobStatus
  created_at: str
  updated_at: str
  progress: JobProgress | None = None
  result_json: dict[str, Any] | None = None
  error_message: str | None = None
  completed_at: str | None = None
  logs: list[str] = field(default_factory=list)
