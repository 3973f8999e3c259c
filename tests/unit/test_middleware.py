"""Unit tests for problem-details error handling."""

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from email_tracker.api.middleware import (
    ProblemDetailsException,
    ProblemDetailsMiddleware,
    register_problem_handlers,
)


@pytest.fixture
def test_client():
    app = FastAPI()
    app.add_middleware(ProblemDetailsMiddleware)
    register_problem_handlers(app)

    @app.get("/problem")
    async def problem():
        raise ProblemDetailsException(
            status_code=409, title="Test Problem", detail="Conflicting thing", hint="retry"
        )

    @app.get("/http")
    async def http_error():
        raise HTTPException(status_code=404, detail="Nothing here")

    @app.get("/boom")
    async def boom():
        raise ValueError("Generic error")

    @app.get("/typed/{number}")
    async def typed(number: int):
        return {"number": number}

    return TestClient(app, raise_server_exceptions=False)


@pytest.mark.unit
class TestProblemDetails:
    def test_problem_details_exception_format(self, test_client):
        response = test_client.get("/problem")

        assert response.status_code == 409
        assert response.headers["content-type"] == "application/problem+json"
        problem = response.json()
        assert problem["type"] == "https://httpstatuses.com/409"
        assert problem["title"] == "Test Problem"
        assert problem["detail"] == "Conflicting thing"
        assert problem["instance"] == "/problem"
        assert problem["hint"] == "retry"

    def test_http_exception_gets_default_title(self, test_client):
        problem = test_client.get("/http").json()

        assert problem["status"] == 404
        assert problem["title"] == "Not Found"
        assert problem["detail"] == "Nothing here"

    def test_unknown_route(self, test_client):
        response = test_client.get("/nope")
        assert response.status_code == 404
        assert response.headers["content-type"] == "application/problem+json"

    def test_validation_error_is_bad_request(self, test_client):
        response = test_client.get("/typed/abc")

        assert response.status_code == 400
        assert response.json()["title"] == "Validation Error"
        assert response.json()["errors"][0]["loc"] == ["path", "number"]

    def test_unexpected_error_is_hidden(self, test_client):
        response = test_client.get("/boom")

        assert response.status_code == 500
        assert response.json()["detail"] == "An unexpected error occurred"
