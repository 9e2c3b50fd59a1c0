"""
End-to-end access scenarios driven entirely through the HTTP API.
"""
from datetime import timedelta

from skillgate.core.content import TestContent, set_content_provider
from skillgate.core.datetime_utils import utc_now
from skillgate.core.test_types import BASIC_MATH, TYPING_KEYBOARD
from skillgate.models import AccessLevel, OneTimeCode


class FixedPassageProvider:
    def __init__(self, text):
        self.text = text

    def fetch(self, db, test_type):
        return TestContent(passage_id=None, text=self.text)


def _start(client, headers, test_type_id):
    return client.post(
        "/v1/tests/start", json={"test_type_id": test_type_id}, headers=headers
    )


class TestCodeRedemptionFlow:
    def test_one_time_code_buys_exactly_one_scored_session(
        self, client, admin_headers, auth_headers, test_types
    ):
        math_id = test_types[BASIC_MATH].id
        codes = client.post(
            "/v1/admin/one-time-codes",
            json={"test_type_id": math_id, "count": 3},
            headers=admin_headers,
        ).json()["codes"]

        redeemed = client.post(
            "/v1/access/redeem", json={"code": codes[0]["code"]}, headers=auth_headers
        )
        assert redeemed.status_code == 200
        assert redeemed.json()["access_level"] == "ONE_TIME"

        first = _start(client, auth_headers, math_id)
        assert first.status_code == 200
        assert client.get("/v1/access/entitlements", headers=auth_headers).json() == []

        client.post(
            f"/v1/tests/{first.json()['session_id']}/complete",
            json={"final_typed_text": "", "elapsed_seconds": 20},
            headers=auth_headers,
        )
        second = _start(client, auth_headers, math_id)
        assert second.status_code == 403
        assert second.json()["error"] == "ACCESS_DENIED"

        listing = client.get(
            f"/v1/admin/one-time-codes?test_type_id={math_id}", headers=admin_headers
        ).json()
        assert listing["stats"]["used"] == 1
        assert listing["stats"]["active"] == 2
        assert listing["stats"]["total_usage"] == 1

    def test_rejected_redemptions(
        self,
        client,
        admin_headers,
        auth_headers,
        other_auth_headers,
        db_session,
        test_types,
    ):
        math_id = test_types[BASIC_MATH].id
        used, stale = client.post(
            "/v1/admin/one-time-codes",
            json={"test_type_id": math_id, "count": 2},
            headers=admin_headers,
        ).json()["codes"]
        client.post(
            "/v1/access/redeem", json={"code": used["code"]}, headers=other_auth_headers
        )
        expired = client.post(
            "/v1/admin/one-time-codes",
            json={"test_type_id": math_id, "expires_in_hours": 1},
            headers=admin_headers,
        ).json()["codes"][0]
        client.post(
            f"/v1/admin/one-time-codes/{stale['id']}/deactivate",
            headers=admin_headers,
        )

        record = db_session.get(OneTimeCode, expired["id"])
        record.expires_at = utc_now() - timedelta(minutes=1)
        db_session.commit()

        def redeem(code):
            return client.post(
                "/v1/access/redeem", json={"code": code}, headers=auth_headers
            )

        assert redeem(used["code"]).json()["error"] == "ALREADY_USED"
        assert redeem(stale["code"]).json()["error"] == "ALREADY_USED"
        assert redeem(expired["code"]).json()["error"] == "EXPIRED"
        assert redeem("ZZZZ9999").json()["error"] == "NOT_FOUND"
        assert client.get("/v1/access/entitlements", headers=auth_headers).json() == []


class TestRequestApprovalFlow:
    def test_request_approve_and_score(
        self, client, admin_headers, auth_headers, test_types
    ):
        keyboard_id = test_types[TYPING_KEYBOARD].id
        set_content_provider(FixedPassageProvider("hello world"))

        submitted = client.post(
            "/v1/access/requests",
            json={"test_type_ids": [keyboard_id], "reason": "job requirement"},
            headers=auth_headers,
        ).json()
        request_id = submitted["requests"][0]["id"]

        pending = client.get(
            "/v1/admin/test-requests?status=PENDING", headers=admin_headers
        ).json()
        assert [r["id"] for r in pending] == [request_id]

        approved = client.post(
            f"/v1/admin/test-requests/{request_id}/approve",
            json={"access_level": "UNLIMITED"},
            headers=admin_headers,
        )
        assert approved.status_code == 200

        started = _start(client, auth_headers, keyboard_id).json()
        assert started["expected_text"] == "hello world"

        completed = client.post(
            f"/v1/tests/{started['session_id']}/complete",
            json={"final_typed_text": "hello world", "elapsed_seconds": 10},
            headers=auth_headers,
        )
        assert completed.status_code == 200
        statistics = completed.json()["statistics"]
        assert statistics["accuracy"] == 100.0
        assert statistics["raw_speed"] == 12
        assert statistics["weighted_speed"] == 12
        assert statistics["mode"] == "WPM"
        assert completed.json()["result"]["weighted_speed"] == 12

        again = _start(client, auth_headers, keyboard_id)
        assert again.status_code == 200

        history = client.get("/v1/tests/history", headers=auth_headers).json()
        assert history["count"] == 1

        log = client.get("/v1/admin/audit-log", headers=admin_headers).json()
        assert [e["action"] for e in log["entries"]] == ["access_granted"]
        assert log["entries"][0]["details"]["access_level"] == "UNLIMITED"

    def test_paused_time_is_not_counted(
        self, client, auth_headers, test_user, test_types, grant_access
    ):
        keyboard = test_types[TYPING_KEYBOARD]
        grant_access(test_user, keyboard, AccessLevel.UNLIMITED)
        set_content_provider(FixedPassageProvider("hello world"))
        session_id = _start(client, auth_headers, keyboard.id).json()["session_id"]

        paused = client.post(f"/v1/tests/{session_id}/pause", headers=auth_headers)
        banked = paused.json()["active_seconds"]
        later = client.get(f"/v1/tests/{session_id}", headers=auth_headers).json()

        assert later["active_seconds"] == banked
        assert later["session"]["status"] == "PAUSED"
