"""Tags and folders for organising applications in the back office."""

import re
from typing import Any

from sqlalchemy.exc import IntegrityError

from diamondtier.applications.service import ApplicationError, ApplicationNotFound
from diamondtier.logging_config import get_logger
from diamondtier.storage.db import db
from diamondtier.storage.models import (
    Application,
    ApplicationFolder,
    ApplicationTag,
    ApplicationTagRelation,
)

logger = get_logger(__name__)

DEFAULT_TAG_COLOR = "#3b82f6"
HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


class TagNotFound(ApplicationError):
    pass


class FolderNotFound(ApplicationError):
    pass


def tag_to_dict(tag: ApplicationTag) -> dict[str, Any]:
    return {"id": tag.id, "name": tag.name, "color": tag.color}


def folder_to_dict(folder: ApplicationFolder) -> dict[str, Any]:
    return {"id": folder.id, "name": folder.name}


def _clean_name(name: str | None, kind: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ApplicationError(f"{kind} name cannot be empty")
    return name


def _check_color(color: str) -> str:
    if not HEX_COLOR.match(color):
        raise ApplicationError(f"Invalid color '{color}', expected a hex value like {DEFAULT_TAG_COLOR}")
    return color.lower()


class TagService:
    """Service for application tags and folders."""

    def __init__(self):
        self.logger = get_logger(__name__)

    # ==================== TAGS ====================

    def list_tags(self) -> list[dict[str, Any]]:
        with db.session() as session:
            tags = session.query(ApplicationTag).order_by(ApplicationTag.name).all()
            return [tag_to_dict(t) for t in tags]

    def create_tag(self, name: str, color: str = DEFAULT_TAG_COLOR) -> dict[str, Any]:
        """Create a tag.

        Raises:
            ApplicationError: Empty or duplicate name, or malformed color
        """
        name = _clean_name(name, "Tag")
        color = _check_color(color)

        try:
            with db.session() as session:
                tag = ApplicationTag(name=name, color=color)
                session.add(tag)
                session.commit()
                result = tag_to_dict(tag)
        except IntegrityError:
            raise ApplicationError(f"Tag '{name}' already exists")

        self.logger.info("tag_created", tag_id=result["id"], name=name)
        return result

    def update_tag(self, tag_id: str, name: str | None = None, color: str | None = None) -> dict[str, Any]:
        try:
            with db.session() as session:
                tag = session.get(ApplicationTag, tag_id)
                if not tag:
                    raise TagNotFound(f"Tag {tag_id} not found")
                if name is not None:
                    tag.name = _clean_name(name, "Tag")
                if color is not None:
                    tag.color = _check_color(color)
                session.commit()
                result = tag_to_dict(tag)
        except IntegrityError:
            raise ApplicationError(f"Tag '{name}' already exists")

        self.logger.info("tag_updated", tag_id=tag_id)
        return result

    def delete_tag(self, tag_id: str) -> None:
        """Delete a tag and remove it from every application."""
        with db.session() as session:
            tag = session.get(ApplicationTag, tag_id)
            if not tag:
                raise TagNotFound(f"Tag {tag_id} not found")

            removed = (
                session.query(ApplicationTagRelation)
                .filter(ApplicationTagRelation.tag_id == tag_id)
                .delete(synchronize_session=False)
            )
            session.delete(tag)

        self.logger.info("tag_deleted", tag_id=tag_id, untagged=removed)

    # ==================== FOLDERS ====================

    def list_folders(self) -> list[dict[str, Any]]:
        with db.session() as session:
            folders = session.query(ApplicationFolder).order_by(ApplicationFolder.name).all()
            return [folder_to_dict(f) for f in folders]

    def create_folder(self, name: str) -> dict[str, Any]:
        name = _clean_name(name, "Folder")

        try:
            with db.session() as session:
                folder = ApplicationFolder(name=name)
                session.add(folder)
                session.commit()
                result = folder_to_dict(folder)
        except IntegrityError:
            raise ApplicationError(f"Folder '{name}' already exists")

        self.logger.info("folder_created", folder_id=result["id"], name=name)
        return result

    def rename_folder(self, folder_id: str, name: str) -> dict[str, Any]:
        name = _clean_name(name, "Folder")

        try:
            with db.session() as session:
                folder = session.get(ApplicationFolder, folder_id)
                if not folder:
                    raise FolderNotFound(f"Folder {folder_id} not found")
                folder.name = name
                session.commit()
                result = folder_to_dict(folder)
        except IntegrityError:
            raise ApplicationError(f"Folder '{name}' already exists")

        self.logger.info("folder_renamed", folder_id=folder_id, name=name)
        return result

    def delete_folder(self, folder_id: str) -> None:
        """Delete a folder; its applications become unfiled."""
        with db.session() as session:
            folder = session.get(ApplicationFolder, folder_id)
            if not folder:
                raise FolderNotFound(f"Folder {folder_id} not found")

            unfiled = (
                session.query(Application)
                .filter(Application.folder_id == folder_id)
                .update({Application.folder_id: None}, synchronize_session=False)
            )
            session.delete(folder)

        self.logger.info("folder_deleted", folder_id=folder_id, unfiled=unfiled)

    # ==================== ASSIGNMENT ====================

    def get_application_tags(self, application_id: str) -> list[dict[str, Any]]:
        with db.session() as session:
            if not session.get(Application, application_id):
                raise ApplicationNotFound(f"Application {application_id} not found")
            tags = (
                session.query(ApplicationTag)
                .join(ApplicationTagRelation, ApplicationTagRelation.tag_id == ApplicationTag.id)
                .filter(ApplicationTagRelation.application_id == application_id)
                .order_by(ApplicationTag.name)
                .all()
            )
            return [tag_to_dict(t) for t in tags]

    def add_tag(self, application_id: str, tag_id: str) -> list[dict[str, Any]]:
        """Tag an application. Tagging twice is a no-op.

        Returns:
            The application's tags afterwards
        """
        with db.session() as session:
            if not session.get(Application, application_id):
                raise ApplicationNotFound(f"Application {application_id} not found")
            if not session.get(ApplicationTag, tag_id):
                raise TagNotFound(f"Tag {tag_id} not found")

            exists = session.query(ApplicationTagRelation).filter(
                ApplicationTagRelation.application_id == application_id,
                ApplicationTagRelation.tag_id == tag_id,
            ).first()
            if not exists:
                session.add(ApplicationTagRelation(application_id=application_id, tag_id=tag_id))
                self.logger.info("application_tagged", application_id=application_id, tag_id=tag_id)

        return self.get_application_tags(application_id)

    def remove_tag(self, application_id: str, tag_id: str) -> list[dict[str, Any]]:
        with db.session() as session:
            if not session.get(Application, application_id):
                raise ApplicationNotFound(f"Application {application_id} not found")

            removed = session.query(ApplicationTagRelation).filter(
                ApplicationTagRelation.application_id == application_id,
                ApplicationTagRelation.tag_id == tag_id,
            ).delete(synchronize_session=False)

        if removed:
            self.logger.info("application_untagged", application_id=application_id, tag_id=tag_id)
        return self.get_application_tags(application_id)

    def move_to_folder(self, application_id: str, folder_id: str | None) -> str | None:
        """File an application in a folder, or unfile it with None."""
        with db.session() as session:
            application = session.get(Application, application_id)
            if not application:
                raise ApplicationNotFound(f"Application {application_id} not found")
            if folder_id is not None and not session.get(ApplicationFolder, folder_id):
                raise FolderNotFound(f"Folder {folder_id} not found")
            application.folder_id = folder_id

        self.logger.info("application_moved", application_id=application_id, folder_id=folder_id)
        return folder_id


# Singleton instance
tag_service = TagService()
