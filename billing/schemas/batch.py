from pydantic import BaseModel, Field
from typing import List


class BatchSummary(BaseModel):
    created: int = 0
    skipped: int = 0
    updated: int = 0
    errors: List[str] = Field(default_factory=list)

    def record_error(self, item_id, exc: Exception) -> None:
        self.errors.append(f"{item_id}: {exc}")
