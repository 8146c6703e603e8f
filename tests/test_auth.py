import json

import responses
from responses import matchers
from werkzeug.test import EnvironBuilder
from werkzeug.wrappers import Request, Response

from autoscaler.auth import USERNAME_KEY, check_drone
from autoscaler.http import ERR_FORBIDDEN, ERR_INVALID_TOKEN, ERR_UNAUTHORIZED

USER_URL = "https://company.drone.com/api/user"


def _request(authorization=None):
    headers = {}
    if authorization is not None:
        headers["Authorization"] = authorization
    builder = EnvironBuilder(method="GET", path="/", headers=headers)
    return Request(builder.get_environ())


def _message(response):
    return json.loads(response.get_data(as_text=True))["message"]


class _Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, request):
        self.calls.append(request)
        return Response(status=418)


def _header_match():
    return [matchers.header_matcher({"Authorization": "Bearer token"})]


def test_authorize():
    nxt = _Recorder()
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, USER_URL, json={"login": "octocat", "admin": True},
                 status=200, match=_header_match())
        response = check_drone("https", "company.drone.com")(nxt)(_request("Bearer token"))
    assert response.status_code == 418
    assert len(nxt.calls) == 1
    assert nxt.calls[0].environ[USERNAME_KEY] == "octocat"


def test_authorize_trims_whitespace():
    nxt = _Recorder()
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, USER_URL, json={"login": "octocat", "admin": True},
                 status=200, match=_header_match())
        response = check_drone("https", "company.drone.com")(nxt)(_request("Bearer  token "))
    assert response.status_code == 418


def test_authorize_missing_token():
    nxt = _Recorder()
    with responses.RequestsMock() as rsps:
        response = check_drone("https", "company.drone.com")(nxt)(_request())
        assert len(rsps.calls) == 0
    assert response.status_code == 401
    assert _message(response) == ERR_INVALID_TOKEN
    assert nxt.calls == []


def test_authorize_not_found():
    nxt = _Recorder()
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, USER_URL, status=404, match=_header_match())
        response = check_drone("https", "company.drone.com")(nxt)(_request("Bearer token"))
    assert response.status_code == 401
    assert _message(response) == ERR_UNAUTHORIZED
    assert nxt.calls == []


def test_authorize_non_admin():
    nxt = _Recorder()
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, USER_URL, json={"login": "octocat", "admin": False},
                 status=200, match=_header_match())
        response = check_drone("https", "company.drone.com")(nxt)(_request("Bearer token"))
    assert response.status_code == 403
    assert _message(response) == ERR_FORBIDDEN
    assert nxt.calls == []