"""
One-shot escalation sweep.

Applies the time policy to every open grievance and persists the ones that
changed. Reads and mutations already evaluate the policy lazily; run this
from cron when records should move without anyone opening them:

    python -m grievance_portal.sweep
"""

import logging

from . import store
from .service import GrievanceService

logger = logging.getLogger(__name__)


def run_sweep(db) -> int:
    service = GrievanceService(store.MongoGrievanceStore(db), store.MongoUserStore(db))
    return service.sweep()


def main():
    client, db = store.connect()
    try:
        changed = run_sweep(db)
    finally:
        client.close()
    print(f"Sweep complete: {changed} grievance(s) escalated")
    return changed


if __name__ == "__main__":
    main()
