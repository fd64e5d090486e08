"""Domain models for the household (Kartu Keluarga) import pipeline.

This package contains the domain model classes shared by the reader,
normalizer, grouper, reconciliation engine and directory adapters.
"""

from .config_models import DatabaseConfig, ImportConfig, NormalizerConfig, SourceConfig
from .enums import (
    BloodType,
    ChurchStatus,
    ExportMode,
    FamilyRelationship,
    Gender,
    MaritalStatus,
    ServiceSector,
    VerificationStatus,
)
from .household import HouseholdRecord, MemberRecord
from .import_row import ImportRow
from .processing_result import ImportResult, ReconciliationTally

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "ImportConfig",
    "NormalizerConfig",
    "SourceConfig",
    # Enumerations
    "BloodType",
    "ChurchStatus",
    "ExportMode",
    "FamilyRelationship",
    "Gender",
    "MaritalStatus",
    "ServiceSector",
    "VerificationStatus",
    # Records
    "HouseholdRecord",
    "MemberRecord",
    "ImportRow",
    # Results
    "ImportResult",
    "ReconciliationTally",
]
