"""Rate limiting on write routes.

Verifies the token bucket dependency:
1. Requests within the bucket capacity succeed
2. Requests exceeding capacity get 429 Too Many Requests
3. The 429 response includes Retry-After and X-RateLimit headers
4. Buckets are per caller
"""

from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from lms.api.ratelimit import SUBMIT_LIMIT
from tests.conftest import auth, mint_token


def _submit(client: TestClient, token: str):
    return client.post(
        f"/quizzes/{uuid.uuid4()}/submit",
        json={"answers": [{"questionId": str(uuid.uuid4()), "choiceIds": ["a"]}]},
        headers=auth(token),
    )


def test_requests_within_limit_succeed(client: TestClient, token: str) -> None:
    for _ in range(5):
        # the quiz does not exist, but the request got past the limiter
        assert _submit(client, token).status_code == 404


def test_requests_over_limit_get_429(client: TestClient, token: str) -> None:
    statuses = [
        _submit(client, token).status_code for _ in range(SUBMIT_LIMIT.capacity + 5)
    ]
    assert 404 in statuses, "Some requests should get through"
    assert 429 in statuses, "Some requests should be rate limited"


def test_429_includes_retry_after_header(client: TestClient, token: str) -> None:
    last_resp = None
    for _ in range(SUBMIT_LIMIT.capacity + 1):
        last_resp = _submit(client, token)
    assert last_resp is not None
    assert last_resp.status_code == 429
    assert int(last_resp.headers["retry-after"]) > 0
    assert last_resp.headers["x-ratelimit-limit"] == str(SUBMIT_LIMIT.capacity)
    assert last_resp.headers["x-ratelimit-remaining"] == "0"


def test_different_users_have_separate_buckets(client: TestClient) -> None:
    token_a = mint_token(user_id=uuid.uuid4())
    token_b = mint_token(user_id=uuid.uuid4())

    for _ in range(SUBMIT_LIMIT.capacity + 1):
        _submit(client, token_a)
    assert _submit(client, token_a).status_code == 429
    assert _submit(client, token_b).status_code == 404


def test_reads_are_not_rate_limited(client: TestClient, token: str) -> None:
    for _ in range(80):
        assert client.get("/me/progress", headers=auth(token)).status_code == 200
