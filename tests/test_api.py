from fastapi.testclient import TestClient

from codegrade.main import app

client = TestClient(app)

UPPER_PY = "def solution(s):\n    return s.upper()\n"


def test_root():
    response = client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "running"
    assert "python" in body["languages"]


def test_health_reports_toolchains():
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["toolchains"]["python"] is True
    assert body["status"] == "healthy"


def test_request_id_is_echoed():
    response = client.get("/", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_execute_with_test_cases():
    response = client.post(
        "/api/v1/execution/execute",
        json={
            "code": UPPER_PY,
            "language": "python",
            "testCases": [
                {"input": "abc", "expectedOutput": "ABC"},
                {"input": "xyz", "expectedOutput": "nope"},
            ],
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Code executed successfully"
    result = body["result"]
    assert result["success"] is True
    assert result["testsPassed"] == 1
    assert result["testsTotal"] == 2
    assert result["testDetails"][1]["actual"] == "XYZ"
    assert isinstance(result["runtimeMs"], int)


def test_execute_accepts_language_alias():
    response = client.post(
        "/api/v1/execution/execute",
        json={"code": "print('hi')", "language": "py"},
    )
    assert response.status_code == 200
    result = response.json()["result"]
    assert result["output"] == "hi\n"
    assert result["testsTotal"] is None


def test_execute_failure_is_reported_in_result():
    response = client.post(
        "/api/v1/execution/execute",
        json={"code": "while True:\n    pass\n", "language": "python", "timeoutMs": 200},
    )
    assert response.status_code == 200
    result = response.json()["result"]
    assert result["success"] is False
    assert result["errorType"] == "time_limit_exceeded"


def test_execute_unknown_language_is_validation_error():
    response = client.post(
        "/api/v1/execution/execute",
        json={"code": "x", "language": "cobol"},
    )
    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert any(d["field"].endswith("language") for d in body["details"])


def test_execute_requires_code():
    response = client.post("/api/v1/execution/execute", json={"language": "python"})
    assert response.status_code == 422


def test_languages():
    response = client.get("/api/v1/execution/languages")
    assert response.status_code == 200
    languages = {entry["language"]: entry for entry in response.json()}
    assert len(languages) == 7
    assert languages["python"]["available"] is True
    assert languages["python"]["compiled"] is False
    assert languages["cpp"]["compiled"] is True
    assert "c++" in languages["cpp"]["aliases"]


def test_metrics_exposes_execution_counters():
    client.post("/api/v1/execution/execute", json={"code": "print(1)", "language": "python"})
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "codegrade_executions_total" in response.text
    assert "codegrade_http_requests_total" in response.text
