from unittest.mock import patch


class TestModeration:
    def test_pending_queue_oldest_first(self, client, student, admin_user, auth_headers, make_resource):
        first = make_resource(student, title="Queue first", status="pending")
        second = make_resource(student, title="Queue second", status="pending")

        resp = client.get("/api/admin/resources/pending", headers=auth_headers(admin_user.email))
        assert resp.status_code == 200
        ids = [r["id"] for r in resp.json()]
        assert ids.index(first.id) < ids.index(second.id)
        assert all(r["status"] == "pending" for r in resp.json())
        assert resp.json()[0]["uploader_name"]

    def test_students_forbidden(self, client, student, auth_headers):
        assert client.get("/api/admin/resources/pending", headers=auth_headers(student.email)).status_code == 403

    @patch("app.services.notification_service.send_email_sync", return_value=True)
    def test_approve_publishes_and_notifies(self, mock_send, client, db_session, student, admin_user,
                                           auth_headers, make_resource):
        from app.models.notification import Notification, NotificationType

        resource = make_resource(student, title="Approve me", status="pending")
        resp = client.post(f"/api/admin/resources/{resource.id}/approve", headers=auth_headers(admin_user.email))
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "approved"
        assert resp.json()["reviewed_at"] is not None

        note = (
            db_session.query(Notification)
            .filter(Notification.user_id == student.id, Notification.type == NotificationType.RESOURCE_APPROVED)
            .order_by(Notification.id.desc())
            .first()
        )
        assert "Approve me" in note.content
        assert "has been published" in note.content
        mock_send.assert_called_once()

        assert client.get(f"/api/resources/{resource.id}").status_code == 200

    def test_approve_twice_rejected(self, client, student, admin_user, auth_headers, make_resource):
        resource = make_resource(student, status="approved")
        resp = client.post(f"/api/admin/resources/{resource.id}/approve", headers=auth_headers(admin_user.email))
        assert resp.status_code == 400

    @patch("app.services.notification_service.send_email_sync", return_value=True)
    def test_reject_deletes_file_and_notifies(self, mock_send, client, db_session, student, admin_user,
                                             auth_headers, make_resource, storage_dir):
        from app.models.notification import Notification, NotificationType

        resource = make_resource(student, title="Blurry scan", status="pending")
        resp = client.post(
            f"/api/admin/resources/{resource.id}/reject",
            json={"reason": "Unreadable"},
            headers=auth_headers(admin_user.email),
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "rejected"
        assert not (storage_dir / resource.file_path).exists()

        note = (
            db_session.query(Notification)
            .filter(Notification.user_id == student.id, Notification.type == NotificationType.RESOURCE_REJECTED)
            .order_by(Notification.id.desc())
            .first()
        )
        assert "has been removed" in note.content
        assert "Unreadable" in note.content

    def test_failed_reject_keeps_file(self, app, db_session, student, admin_user, auth_headers,
                                      make_resource, storage_dir, monkeypatch):
        from fastapi.testclient import TestClient
        from app.api.routes import admin as admin_route
        from app.models.resource import Resource

        def boom(*args, **kwargs):
            raise RuntimeError("db down")

        resource = make_resource(student, status="pending")
        headers = auth_headers(admin_user.email)
        monkeypatch.setattr(admin_route, "log_action", boom)
        with TestClient(app, raise_server_exceptions=False) as quiet_client:
            resp = quiet_client.post(f"/api/admin/resources/{resource.id}/reject", headers=headers)
        assert resp.status_code == 500

        assert (storage_dir / resource.file_path).exists()
        db_session.expire_all()
        assert db_session.get(Resource, resource.id).status == "pending"

    def test_reject_without_body(self, client, student, admin_user, auth_headers, make_resource):
        resource = make_resource(student, status="pending")
        resp = client.post(f"/api/admin/resources/{resource.id}/reject", headers=auth_headers(admin_user.email))
        assert resp.status_code == 200

    def test_verify_toggles(self, client, student, admin_user, auth_headers, make_resource):
        resource = make_resource(student)
        headers = auth_headers(admin_user.email)
        assert client.post(f"/api/admin/resources/{resource.id}/verify", headers=headers).json()["verified"] is True
        assert client.post(f"/api/admin/resources/{resource.id}/verify", headers=headers).json()["verified"] is False

    def test_preview_inline(self, client, student, admin_user, auth_headers, make_resource):
        resource = make_resource(student, status="pending", file_name="scan.pdf", data=b"%PDF scan")
        resp = client.get(f"/api/admin/resources/{resource.id}/preview", headers=auth_headers(admin_user.email))
        assert resp.status_code == 200
        assert resp.content == b"%PDF scan"
        assert resp.headers["content-disposition"].startswith("inline")

    def test_preview_non_ascii_name(self, client, student, admin_user, auth_headers, make_resource):
        resource = make_resource(student, status="pending", file_name="Übung—1.pdf", data=b"%PDF scan")
        resp = client.get(f"/api/admin/resources/{resource.id}/preview", headers=auth_headers(admin_user.email))
        assert resp.status_code == 200
        assert resp.headers["content-disposition"] == (
            "inline; filename=\"bung_1.pdf\"; filename*=UTF-8''%C3%9Cbung%E2%80%941.pdf"
        )

    def test_unknown_resource_404(self, client, admin_user, auth_headers):
        resp = client.post("/api/admin/resources/999999/approve", headers=auth_headers(admin_user.email))
        assert resp.status_code == 404


class TestStatsAndAudit:
    def test_stats(self, client, student, admin_user, auth_headers, make_resource):
        make_resource(student, status="pending")
        resp = client.get("/api/admin/stats", headers=auth_headers(admin_user.email))
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_users"] >= 2
        assert set(body["resources_by_status"]) >= {"pending", "approved", "rejected"}
        assert body["resources_by_status"]["pending"] >= 1
        assert body["total_downloads"] >= 0

    def test_audit_log_records_moderation(self, client, student, admin_user, auth_headers, make_resource):
        resource = make_resource(student, status="pending")
        headers = auth_headers(admin_user.email)
        client.post(f"/api/admin/resources/{resource.id}/verify", headers=headers)

        resp = client.get("/api/admin/audit-logs", params={"action": "verify"}, headers=headers)
        assert resp.status_code == 200
        entry = next(i for i in resp.json()["items"] if i["resource_id"] == resource.id)
        assert entry["user_name"] == "Ada Admin"
        assert entry["resource_type"] == "resource"

    def test_audit_log_search_and_user_filter(self, client, student, admin_user, auth_headers, make_resource):
        resource = make_resource(student, status="pending")
        headers = auth_headers(admin_user.email)
        client.post(f"/api/admin/resources/{resource.id}/reject", json={"reason": "Wrong course 100%"},
                    headers=headers)

        resp = client.get(
            "/api/admin/audit-logs",
            params={"search": "course 100%", "user_id": admin_user.id},
            headers=headers,
        )
        items = resp.json()["items"]
        assert [i["resource_id"] for i in items] == [resource.id]
        assert items[0]["action"] == "reject"

        assert client.get(
            "/api/admin/audit-logs", params={"search": "course 100%", "user_id": student.id}, headers=headers,
        ).json()["total"] == 0


def test_full_names_by_id(db_session, student, admin_user):
    from app.services.user_service import full_names_by_id

    names = full_names_by_id(db_session, [student.id, admin_user.id, None, 999999, student.id])
    assert names == {student.id: "Sam Student", admin_user.id: "Ada Admin"}
    assert full_names_by_id(db_session, [None]) == {}
