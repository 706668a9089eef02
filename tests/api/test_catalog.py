from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import seed_course, seed_track


def test_catalog_is_public_and_empty_by_default(client: TestClient) -> None:
    resp = client.get("/catalog")
    assert resp.status_code == 200
    assert resp.json() == {"courses": [], "tracks": []}


def test_catalog_lists_active_courses_with_counts(client: TestClient) -> None:
    course = seed_course(("video", "text", "quiz"), title="Algebra")
    seed_course(("video",), title="Hidden", active=False)

    courses = client.get("/catalog").json()["courses"]
    assert len(courses) == 1
    assert courses[0]["id"] == str(course.course_id)
    assert courses[0]["title"] == "Algebra"
    assert courses[0]["moduleCount"] == 3
    assert courses[0]["itemCount"] == 3


def test_catalog_lists_tracks_in_order(client: TestClient) -> None:
    first = seed_course(title="A")
    second = seed_course(title="B")
    track_id = seed_track([second.course_id, first.course_id])

    tracks = client.get("/catalog").json()["tracks"]
    assert [t["id"] for t in tracks] == [str(track_id)]
    assert [c["courseId"] for c in tracks[0]["courses"]] == [
        str(second.course_id),
        str(first.course_id),
    ]
    assert tracks[0]["courses"][0] == {
        "courseId": str(second.course_id),
        "position": 1,
        "required": True,
    }
