import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core.errors import AppError, BadRequest, Conflict, Forbidden, Internal, NotFound, Unauthorized, app_error_handler


@pytest.mark.parametrize(
    "error, status_code",
    [
        (BadRequest, 400),
        (Unauthorized, 401),
        (Forbidden, 403),
        (NotFound, 404),
        (Conflict, 409),
        (Internal, 500),
    ],
)
def test_errors_render_as_error_envelope(error, status_code):
    app = FastAPI()
    app.add_exception_handler(AppError, app_error_handler)

    @app.get("/boom")
    async def boom():
        raise error("went wrong")

    resp = TestClient(app).get("/boom")
    assert resp.status_code == status_code
    assert resp.json() == {"error": "went wrong"}
    assert ("www-authenticate" in resp.headers) == (error is Unauthorized)


def test_default_detail():
    assert NotFound().detail == "Not found"
    assert str(Conflict()) == "Already exists"
