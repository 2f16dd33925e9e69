import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from billing.core.database import atomic

logger = logging.getLogger(__name__)


class DeletionPlan:
    """Ordered delete/detach steps executed in a single transaction.

    Steps run in the order they are added, so dependants must be added before
    the rows they reference. Either every step applies or none does.
    """

    def __init__(self, db: Session, label: str = "deletion"):
        self.db = db
        self.label = label
        self.steps: List[Tuple[str, Any, tuple, Optional[Dict[str, Any]]]] = []

    def delete(self, model, *criteria) -> "DeletionPlan":
        self.steps.append(("delete", model, criteria, None))
        return self

    def detach(self, model, values: Dict[str, Any], *criteria) -> "DeletionPlan":
        """Null out references instead of deleting the rows holding them."""
        self.steps.append(("detach", model, criteria, values))
        return self

    def execute(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        with atomic(self.db):
            for action, model, criteria, values in self.steps:
                query = self.db.query(model).filter(*criteria)
                if action == "delete":
                    affected = query.delete(synchronize_session="fetch")
                else:
                    affected = query.update(values, synchronize_session="fetch")
                key = f"{action}:{model.__tablename__}"
                counts[key] = counts.get(key, 0) + affected
        logger.info("%s executed: %s", self.label, counts)
        return counts
