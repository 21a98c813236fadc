import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from meetgrid.middleware import HTTPLogMiddleware


def test_request_logging_omits_untracked_params(caplog):
    app = FastAPI()
    app.add_middleware(HTTPLogMiddleware)

    @app.get("/events")
    async def events():
        return {"ok": True}

    with caplog.at_level(logging.DEBUG, logger="meetgrid.http"):
        res = TestClient(app).get("/events", params={"id": "evt", "password": "hunter2"})

    assert res.status_code == 200
    assert "http.request start method=GET path=/events params={'id': 'evt'}" in caplog.text
    assert "status=200" in caplog.text
    assert "hunter2" not in caplog.text
