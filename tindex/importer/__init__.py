"""Batch import of tracker statistics."""

from __future__ import annotations

from tindex.importer.statistics import (
    ImportOutcome,
    ImportSummary,
    OutcomeKind,
    StatisticsImporter,
    run_importer,
)

__all__ = [
    "ImportOutcome",
    "ImportSummary",
    "OutcomeKind",
    "StatisticsImporter",
    "run_importer",
]
