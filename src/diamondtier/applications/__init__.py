"""Funding application intake and review."""

from diamondtier.applications.service import (
    ApplicationError,
    ApplicationFormData,
    ApplicationNotFound,
    ApplicationService,
    application_service,
)
from diamondtier.applications.tags import FolderNotFound, TagNotFound, TagService, tag_service

__all__ = [
    "ApplicationError",
    "ApplicationFormData",
    "ApplicationNotFound",
    "ApplicationService",
    "FolderNotFound",
    "TagNotFound",
    "TagService",
    "application_service",
    "tag_service",
]
