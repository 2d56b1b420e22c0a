"""HTTP tests for the authorization routes."""

from uuid import uuid4

import pytest
from fastapi import status

from src.authorization.models import AuthorizationGrant, AuthorizationRequest, GrantKind
from src.core.exceptions import StorageUnavailableError
from src.progress.models import LessonProgress


@pytest.fixture
def layout(make_course):
    return make_course(lessons_per_module=(2, 1))


@pytest.fixture
def admin_headers(auth_headers, admin_id):
    return auth_headers(admin_id, role="admin")


def add_grant(grant_store, **kwargs) -> AuthorizationGrant:
    grant = AuthorizationGrant(**kwargs)
    grant_store.grants[grant.grant_id] = grant
    return grant


def add_pending(request_store, learner, layout, lesson_index=1) -> AuthorizationRequest:
    lesson = layout.all_lessons[lesson_index]
    request = AuthorizationRequest(
        user_id=learner.id,
        course_id=layout.course.id,
        module_id=lesson.module_id,
        lesson_id=lesson.id,
    )
    request_store.requests[request.request_id] = request
    request_store.slots[(learner.id, layout.course.id, lesson.id)] = request.request_id
    return request


class TestAccessCheck:
    def test_locked_lesson(self, client, auth_headers, learner, layout) -> None:
        response = client.get(
            "/v1/authorization/check",
            params={
                "course_id": str(layout.course.id),
                "lesson_id": str(layout.all_lessons[1].id),
            },
            headers=auth_headers(learner.id),
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"permitted": False, "reason": "no authorization"}

    def test_completed_lesson(
        self, client, auth_headers, learner, layout, progress_store
    ) -> None:
        lesson = layout.all_lessons[0]
        progress_store.lessons[
            (learner.id, layout.course.id, lesson.module_id, lesson.id)
        ] = LessonProgress(
            learner.id, layout.course.id, lesson.module_id, lesson.id, completed=True
        )

        response = client.get(
            "/v1/authorization/check",
            params={"course_id": str(layout.course.id), "lesson_id": str(lesson.id)},
            headers=auth_headers(learner.id),
        )

        assert response.json() == {"permitted": True, "reason": "already completed"}

    def test_module_grant(
        self, client, auth_headers, learner, layout, grant_store
    ) -> None:
        add_grant(
            grant_store,
            user_id=learner.id,
            course_id=layout.course.id,
            kind=GrantKind.MODULE,
            module_id=layout.modules[1].id,
        )

        response = client.get(
            "/v1/authorization/check",
            params={
                "course_id": str(layout.course.id),
                "lesson_id": str(layout.lessons[1][0].id),
            },
            headers=auth_headers(learner.id),
        )

        assert response.json() == {"permitted": True, "reason": "module unlocked"}

    def test_subject_outside_track(
        self, client, auth_headers, catalog, make_course
    ) -> None:
        user = catalog.add_user(track="programacao")
        robotics = make_course(subject="robotica")

        response = client.get(
            "/v1/authorization/check",
            params={
                "course_id": str(robotics.course.id),
                "lesson_id": str(robotics.all_lessons[0].id),
            },
            headers=auth_headers(user.id),
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["code"] == "forbidden"

    def test_unknown_course(self, client, auth_headers, learner) -> None:
        response = client.get(
            "/v1/authorization/check",
            params={"course_id": str(uuid4()), "lesson_id": str(uuid4())},
            headers=auth_headers(learner.id),
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["code"] == "not_found"

    def test_lesson_outside_course(
        self, client, auth_headers, learner, layout, make_course
    ) -> None:
        other = make_course()

        response = client.get(
            "/v1/authorization/check",
            params={
                "course_id": str(layout.course.id),
                "lesson_id": str(other.all_lessons[0].id),
            },
            headers=auth_headers(learner.id),
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_storage_timeout_is_service_unavailable(
        self, client, auth_headers, learner, layout, grant_store, monkeypatch
    ) -> None:
        async def unavailable(*_args):
            raise StorageUnavailableError()

        monkeypatch.setattr(grant_store, "list_for_user_course", unavailable)

        response = client.get(
            "/v1/authorization/check",
            params={
                "course_id": str(layout.course.id),
                "lesson_id": str(layout.all_lessons[1].id),
            },
            headers=auth_headers(learner.id),
        )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["code"] == "storage_unavailable"

    def test_missing_token(self, client, layout) -> None:
        response = client.get(
            "/v1/authorization/check",
            params={
                "course_id": str(layout.course.id),
                "lesson_id": str(layout.all_lessons[0].id),
            },
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_invalid_query(self, client, auth_headers, learner) -> None:
        response = client.get(
            "/v1/authorization/check",
            params={"course_id": "not-a-uuid", "lesson_id": str(uuid4())},
            headers=auth_headers(learner.id),
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["code"] == "validation_error"
        assert body["details"]


class TestSubmitRequest:
    def test_creates_pending_request(
        self, client, auth_headers, learner, layout, request_store
    ) -> None:
        response = client.post(
            "/v1/authorization/requests",
            json={
                "course_id": str(layout.course.id),
                "lesson_id": str(layout.all_lessons[1].id),
                "reason": "quero avancar",
            },
            headers=auth_headers(learner.id),
        )

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["status"] == "pending"
        stored = request_store.requests[next(iter(request_store.requests))]
        assert str(stored.request_id) == body["request_id"]
        assert stored.origin.value == "manual"
        assert stored.reason == "quero avancar"

    def test_duplicate_manual_request_conflicts(
        self, client, auth_headers, learner, layout
    ) -> None:
        payload = {
            "course_id": str(layout.course.id),
            "lesson_id": str(layout.all_lessons[1].id),
        }
        first = client.post(
            "/v1/authorization/requests", json=payload, headers=auth_headers(learner.id)
        )
        second = client.post(
            "/v1/authorization/requests", json=payload, headers=auth_headers(learner.id)
        )

        assert first.status_code == status.HTTP_201_CREATED
        assert second.status_code == status.HTTP_409_CONFLICT
        assert second.json()["code"] == "duplicate_request"

    def test_missing_lesson_is_validation_error(
        self, client, auth_headers, learner, layout
    ) -> None:
        response = client.post(
            "/v1/authorization/requests",
            json={"course_id": str(layout.course.id)},
            headers=auth_headers(learner.id),
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_lists_own_requests(
        self, client, auth_headers, learner, layout, request_store, catalog
    ) -> None:
        add_pending(request_store, learner, layout)
        stranger = catalog.add_user()
        add_pending(request_store, stranger, layout)

        response = client.get(
            "/v1/authorization/requests/me", headers=auth_headers(learner.id)
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["user_id"] == str(learner.id)


class TestAdminQueue:
    def test_students_are_forbidden(self, client, auth_headers, learner) -> None:
        response = client.get(
            "/v1/admin/authorization/requests", headers=auth_headers(learner.id)
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_lists_pending(
        self, client, admin_headers, learner, layout, request_store
    ) -> None:
        request = add_pending(request_store, learner, layout)

        response = client.get(
            "/v1/admin/authorization/requests", headers=admin_headers
        )

        assert response.status_code == status.HTTP_200_OK
        assert [item["request_id"] for item in response.json()["items"]] == [
            str(request.request_id)
        ]

    def test_approve_creates_lesson_grant(
        self, client, admin_headers, admin_id, learner, layout, request_store, grant_store
    ) -> None:
        request = add_pending(request_store, learner, layout)

        response = client.post(
            f"/v1/admin/authorization/requests/{request.request_id}/approve",
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["request"]["status"] == "approved"
        assert body["grant"]["kind"] == "lesson"
        assert body["grant"]["lesson_id"] == str(request.lesson_id)
        assert body["grant"]["granted_by"] == str(admin_id)
        assert body["request"]["grant_id"] == body["grant"]["grant_id"]
        assert len(grant_store.grants) == 1

    def test_approve_twice_is_bad_request(
        self, client, admin_headers, learner, layout, request_store, grant_store
    ) -> None:
        request = add_pending(request_store, learner, layout)
        url = f"/v1/admin/authorization/requests/{request.request_id}/approve"

        client.post(url, headers=admin_headers)
        second = client.post(url, headers=admin_headers)

        assert second.status_code == status.HTTP_400_BAD_REQUEST
        assert second.json()["code"] == "already_processed"
        assert len(grant_store.grants) == 1

    def test_approve_unknown_request(self, client, admin_headers) -> None:
        response = client.post(
            f"/v1/admin/authorization/requests/{uuid4()}/approve",
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_reject_requires_reason(
        self, client, admin_headers, learner, layout, request_store
    ) -> None:
        request = add_pending(request_store, learner, layout)

        response = client.post(
            f"/v1/admin/authorization/requests/{request.request_id}/reject",
            json={"reason": ""},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert request_store.requests[request.request_id].is_pending

    def test_reject(
        self, client, admin_headers, learner, layout, request_store, grant_store
    ) -> None:
        request = add_pending(request_store, learner, layout)

        response = client.post(
            f"/v1/admin/authorization/requests/{request.request_id}/reject",
            json={"reason": "Conclua a aula anterior"},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()["request"]
        assert body["status"] == "rejected"
        assert body["rejection_reason"] == "Conclua a aula anterior"
        assert grant_store.grants == {}


class TestAdminGrants:
    def test_create_course_grant(
        self, client, admin_headers, learner, layout, grant_store
    ) -> None:
        response = client.post(
            "/v1/admin/authorization/grants",
            json={
                "user_id": str(learner.id),
                "course_id": str(layout.course.id),
                "kind": "course",
            },
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["kind"] == "course"
        assert len(grant_store.grants) == 1

    def test_module_grant_without_module_is_rejected(
        self, client, admin_headers, learner, layout
    ) -> None:
        response = client.post(
            "/v1/admin/authorization/grants",
            json={
                "user_id": str(learner.id),
                "course_id": str(layout.course.id),
                "kind": "module",
            },
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_list_and_revoke(
        self, client, admin_headers, learner, layout, grant_store
    ) -> None:
        grant = add_grant(
            grant_store, user_id=learner.id, course_id=layout.course.id, kind="course"
        )
        params = {"user_id": str(learner.id), "course_id": str(layout.course.id)}

        listed = client.get(
            "/v1/admin/authorization/grants", params=params, headers=admin_headers
        )
        revoked = client.delete(
            f"/v1/admin/authorization/grants/{learner.id}/{layout.course.id}/{grant.grant_id}",
            headers=admin_headers,
        )
        active = client.get(
            "/v1/admin/authorization/grants",
            params={**params, "active_only": "true"},
            headers=admin_headers,
        )

        assert listed.json()["total"] == 1
        assert revoked.status_code == status.HTTP_200_OK
        assert revoked.json()["active"] is False
        assert active.json()["total"] == 0

    def test_students_cannot_grant(self, client, auth_headers, learner, layout) -> None:
        response = client.post(
            "/v1/admin/authorization/grants",
            json={
                "user_id": str(learner.id),
                "course_id": str(layout.course.id),
                "kind": "course",
            },
            headers=auth_headers(learner.id),
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
