"""Tests for application tags and folders."""

import dataclasses

import pytest

from diamondtier.applications.service import ApplicationError, ApplicationNotFound, application_service
from diamondtier.applications.tags import FolderNotFound, TagNotFound, tag_service
from diamondtier.storage.db import db
from diamondtier.storage.models import ApplicationTagRelation


@pytest.fixture
def application_id(form):
    return application_service.submit_application(form)["applicationId"]


class TestTags:
    def test_create_and_list(self):
        tag_service.create_tag("  Urgent ", "#EF4444")
        tag_service.create_tag("Callback")

        tags = tag_service.list_tags()

        assert [t["name"] for t in tags] == ["Callback", "Urgent"]
        assert tags[0]["color"] == "#3b82f6"
        assert tags[1]["color"] == "#ef4444"

    def test_empty_name(self):
        with pytest.raises(ApplicationError, match="cannot be empty"):
            tag_service.create_tag("   ")

    def test_bad_color(self):
        with pytest.raises(ApplicationError, match="Invalid color"):
            tag_service.create_tag("Urgent", "red")

    def test_duplicate_name(self):
        tag_service.create_tag("Urgent")

        with pytest.raises(ApplicationError, match="already exists"):
            tag_service.create_tag("Urgent")

    def test_update(self):
        tag = tag_service.create_tag("Urgnet")

        updated = tag_service.update_tag(tag["id"], name="Urgent", color="#10b981")

        assert updated == {"id": tag["id"], "name": "Urgent", "color": "#10b981"}

    def test_update_missing(self):
        with pytest.raises(TagNotFound):
            tag_service.update_tag("nope", name="Urgent")

    def test_delete_removes_assignments(self, application_id):
        tag = tag_service.create_tag("Urgent")
        tag_service.add_tag(application_id, tag["id"])

        tag_service.delete_tag(tag["id"])

        assert tag_service.list_tags() == []
        assert tag_service.get_application_tags(application_id) == []
        with db.session() as session:
            assert session.query(ApplicationTagRelation).count() == 0


class TestTagAssignment:
    def test_add_and_remove(self, application_id):
        urgent = tag_service.create_tag("Urgent")
        callback = tag_service.create_tag("Callback")

        tag_service.add_tag(application_id, urgent["id"])
        tags = tag_service.add_tag(application_id, callback["id"])

        assert [t["name"] for t in tags] == ["Callback", "Urgent"]
        assert [t["name"] for t in application_service.get_application(application_id)["tags"]] == [
            "Callback",
            "Urgent",
        ]

        assert tag_service.remove_tag(application_id, urgent["id"]) == [callback]

    def test_tagging_twice_is_a_no_op(self, application_id):
        tag = tag_service.create_tag("Urgent")

        tag_service.add_tag(application_id, tag["id"])
        tags = tag_service.add_tag(application_id, tag["id"])

        assert tags == [tag]

    def test_unknown_application_or_tag(self, application_id):
        tag = tag_service.create_tag("Urgent")

        with pytest.raises(ApplicationNotFound):
            tag_service.add_tag("nope", tag["id"])
        with pytest.raises(TagNotFound):
            tag_service.add_tag(application_id, "nope")


class TestFolders:
    def test_create_rename_list(self):
        folder = tag_service.create_folder("Follow up")

        tag_service.rename_folder(folder["id"], "Follow-up")

        assert tag_service.list_folders() == [{"id": folder["id"], "name": "Follow-up"}]

    def test_duplicate_folder(self):
        tag_service.create_folder("Follow up")

        with pytest.raises(ApplicationError, match="already exists"):
            tag_service.create_folder("Follow up")

    def test_move_and_unfile(self, application_id):
        folder = tag_service.create_folder("Follow up")

        tag_service.move_to_folder(application_id, folder["id"])
        assert application_service.get_application(application_id)["folder_id"] == folder["id"]

        tag_service.move_to_folder(application_id, None)
        assert application_service.get_application(application_id)["folder_id"] is None

    def test_move_to_missing_folder(self, application_id):
        with pytest.raises(FolderNotFound):
            tag_service.move_to_folder(application_id, "nope")

    def test_delete_unfiles_applications(self, application_id):
        folder = tag_service.create_folder("Follow up")
        tag_service.move_to_folder(application_id, folder["id"])

        tag_service.delete_folder(folder["id"])

        assert tag_service.list_folders() == []
        assert application_service.get_application(application_id)["folder_id"] is None


class TestListFilters:
    def test_folder_and_tag_filters(self, form):
        first = application_service.submit_application(form)["applicationId"]
        second = application_service.submit_application(
            dataclasses.replace(form, business_name="Bright Bakery")
        )["applicationId"]
        folder = tag_service.create_folder("Follow up")
        urgent = tag_service.create_tag("Urgent")
        callback = tag_service.create_tag("Callback")
        tag_service.move_to_folder(first, folder["id"])
        tag_service.add_tag(first, urgent["id"])
        tag_service.add_tag(first, callback["id"])
        tag_service.add_tag(second, urgent["id"])

        in_folder = application_service.list_applications(folder_id=folder["id"])
        assert [a["id"] for a in in_folder["applications"]] == [first]

        urgent_only = application_service.list_applications(tag_ids=[urgent["id"]])
        assert urgent_only["total"] == 2

        both = application_service.list_applications(tag_ids=[urgent["id"], callback["id"]])
        assert [a["id"] for a in both["applications"]] == [first]


class TestTagRoutes:
    def test_requires_admin(self, client):
        assert client.get("/api/admin/tags").status_code == 401

    def test_tag_and_file_application(self, client, admin_headers, application_id):
        tag = client.post("/api/admin/tags", json={"name": "Urgent", "color": "#ef4444"}, headers=admin_headers)
        folder = client.post("/api/admin/folders", json={"name": "Follow up"}, headers=admin_headers)
        assert tag.status_code == 201
        assert folder.status_code == 201
        tag_id = tag.json()["id"]
        folder_id = folder.json()["id"]

        tagged = client.post(
            f"/api/admin/applications/{application_id}/tags", json={"tagId": tag_id}, headers=admin_headers
        )
        moved = client.put(
            f"/api/admin/applications/{application_id}/folder", json={"folderId": folder_id}, headers=admin_headers
        )

        assert tagged.json()["tags"][0]["name"] == "Urgent"
        assert moved.json() == {"success": True, "folderId": folder_id}

        listed = client.get(
            "/api/admin/applications", params={"folderId": folder_id, "tag": tag_id}, headers=admin_headers
        ).json()
        assert listed["total"] == 1
        assert listed["applications"][0]["tags"] == [{"id": tag_id, "name": "Urgent", "color": "#ef4444"}]

        untagged = client.delete(f"/api/admin/applications/{application_id}/tags/{tag_id}", headers=admin_headers)
        assert untagged.json() == {"tags": []}

    def test_duplicate_tag(self, client, admin_headers):
        client.post("/api/admin/tags", json={"name": "Urgent"}, headers=admin_headers)

        response = client.post("/api/admin/tags", json={"name": "Urgent"}, headers=admin_headers)
        assert response.status_code == 400

    def test_delete_missing_folder(self, client, admin_headers):
        assert client.delete("/api/admin/folders/nope", headers=admin_headers).status_code == 404

    def test_unknown_tag_on_application(self, client, admin_headers, application_id):
        response = client.post(
            f"/api/admin/applications/{application_id}/tags", json={"tagId": "nope"}, headers=admin_headers
        )
        assert response.status_code == 404
