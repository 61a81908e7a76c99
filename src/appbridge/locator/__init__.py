"""Binary discovery for native app builds."""

from appbridge.locator.base import BinaryLocator, check_candidate
from appbridge.locator.candidates import CandidateGenerator, PathGeneration
from appbridge.locator.metadata import AppMetadata, read_app_metadata
from appbridge.locator.platforms import remediation_for, sanitize_app_name

__all__ = [
    "AppMetadata",
    "BinaryLocator",
    "CandidateGenerator",
    "PathGeneration",
    "check_candidate",
    "read_app_metadata",
    "remediation_for",
    "sanitize_app_name",
]
