from unittest.mock import patch

import pytest


@pytest.fixture()
def requester(make_user):
    return make_user("requester@test.com", full_name="Rory Requester")


class TestStudentRequests:
    def test_create_and_list(self, client, requester, auth_headers):
        headers = auth_headers(requester.email)
        resp = client.post(
            "/api/requests/",
            json={"question": "  Past questions for CSC 301 2021  ", "course_code": "csc301"},
            headers=headers,
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["status"] == "pending"
        assert body["course_code"] == "CSC 301"
        assert body["question"] == "Past questions for CSC 301 2021"

        mine = client.get("/api/requests/", headers=headers).json()
        assert mine[0]["id"] == body["id"]

    def test_blank_question_rejected(self, client, requester, auth_headers):
        resp = client.post("/api/requests/", json={"question": "   "}, headers=auth_headers(requester.email))
        assert resp.status_code == 422

    def test_requires_login(self, client):
        assert client.post("/api/requests/", json={"question": "anything"}).status_code == 401

    def test_only_own_requests_listed(self, client, make_user, requester, auth_headers):
        client.post("/api/requests/", json={"question": "Mine"}, headers=auth_headers(requester.email))
        other = make_user("other_requester@test.com")
        listed = client.get("/api/requests/", headers=auth_headers(other.email)).json()
        assert all(r["user_id"] == other.id for r in listed)


class TestAdminRequests:
    def test_list_with_requester_and_counts(self, client, requester, admin_user, auth_headers):
        client.post("/api/requests/", json={"question": "Need STA 202 notes"}, headers=auth_headers(requester.email))

        resp = client.get("/api/admin/requests", params={"status": "pending"}, headers=auth_headers(admin_user.email))
        assert resp.status_code == 200
        body = resp.json()
        assert body["pending_count"] >= 1
        assert all(r["status"] == "pending" for r in body["items"])
        item = next(r for r in body["items"] if r["question"] == "Need STA 202 notes")
        assert item["requester_name"] == "Rory Requester"
        assert item["requester_email"] == "requester@test.com"

    def test_invalid_status_filter(self, client, admin_user, auth_headers):
        resp = client.get("/api/admin/requests", params={"status": "bogus"}, headers=auth_headers(admin_user.email))
        assert resp.status_code == 400

    def test_students_forbidden(self, client, requester, auth_headers):
        assert client.get("/api/admin/requests", headers=auth_headers(requester.email)).status_code == 403

    @patch("app.services.notification_service.send_email_sync", return_value=True)
    def test_respond_notifies_requester(self, mock_send, client, db_session, requester, admin_user, auth_headers):
        from app.models.notification import Notification, NotificationType

        created = client.post(
            "/api/requests/", json={"question": "MTH 201 2019 exam please"}, headers=auth_headers(requester.email),
        ).json()

        resp = client.post(
            f"/api/admin/requests/{created['id']}/respond",
            json={"status": "fulfilled", "admin_response": "Uploaded under MTH 201."},
            headers=auth_headers(admin_user.email),
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "fulfilled"
        assert resp.json()["admin_response"] == "Uploaded under MTH 201."
        assert resp.json()["updated_at"] is not None

        note = (
            db_session.query(Notification)
            .filter(Notification.user_id == requester.id, Notification.type == NotificationType.REQUEST_RESPONDED)
            .order_by(Notification.id.desc())
            .first()
        )
        assert note is not None
        assert note.content == "Uploaded under MTH 201."
        mock_send.assert_called_once()
        assert mock_send.call_args.args[0] == requester.email

        responded = client.get(
            "/api/admin/requests", params={"status": "responded"}, headers=auth_headers(admin_user.email),
        ).json()
        assert created["id"] in [r["id"] for r in responded["items"]]

    def test_blank_response_rejected(self, client, requester, admin_user, auth_headers):
        created = client.post(
            "/api/requests/", json={"question": "Anything"}, headers=auth_headers(requester.email),
        ).json()
        resp = client.post(
            f"/api/admin/requests/{created['id']}/respond",
            json={"status": "rejected", "admin_response": "   "},
            headers=auth_headers(admin_user.email),
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Response required"

    def test_respond_unknown_request_404(self, client, admin_user, auth_headers):
        resp = client.post(
            "/api/admin/requests/999999/respond",
            json={"status": "fulfilled", "admin_response": "ok"},
            headers=auth_headers(admin_user.email),
        )
        assert resp.status_code == 404
