# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Govoracle Contributors

"""Govoracle - off-chain oracle for multi-network power-weighted governance.

Pipeline:
  Scheduler
    → EventSyncEngine   (contract logs → proposals / votes, per-network cursor)
    → VoteTallyEngine   (expired proposals → weighted per-option results)
    → PowerBackupService (historical power snapshots)

SealedBallotEncryptor is called directly by the submission path and does not
depend on the scheduler.

CLI entry point: ``govoracle``
"""

__version__ = "0.3.0"
