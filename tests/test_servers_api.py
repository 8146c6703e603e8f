import json

from werkzeug.test import EnvironBuilder
from werkzeug.wrappers import Request

from autoscaler.servers_api import (
    handle_server_create,
    handle_server_delete,
    handle_server_find,
    handle_server_list,
)
from autoscaler.types import Server, ServerState, ServerStore


def make_request(method="GET", path="/", query=None):
    builder = EnvironBuilder(method=method, path=path, query_string=query)
    return Request(builder.get_environ())


class FakeStore(ServerStore):
    def __init__(self, servers=None, error=None, fail_on=()):
        self.servers = {s.name: s for s in (servers or [])}
        self.error = error
        self.fail_on = set(fail_on)
        self.calls = []

    def _maybe_fail(self, op):
        self.calls.append(op)
        if op in self.fail_on:
            raise self.error

    def find(self, name):
        self._maybe_fail("find")
        if name not in self.servers:
            raise LookupError("not found")
        return self.servers[name]

    def list(self):
        self._maybe_fail("list")
        return list(self.servers.values())

    def list_state(self, state):
        self._maybe_fail("list_state")
        return [s for s in self.servers.values() if s.state == state]

    def create(self, server):
        self._maybe_fail("create")
        self.servers[server.name] = server

    def update(self, server):
        self._maybe_fail("update")
        self.servers[server.name] = server

    def delete(self, server):
        self._maybe_fail("delete")
        self.servers.pop(server.name, None)

    def purge(self, before):
        self._maybe_fail("purge")


def body(response):
    return json.loads(response.get_data(as_text=True))


def test_handle_server_list():
    servers = [Server(name="server1", capacity=1), Server(name="server2", capacity=1)]
    response = handle_server_list(FakeStore(servers))(make_request(path="/api/servers"))
    assert response.status_code == 200
    assert [Server.from_dict(item) for item in body(response)] == servers


def test_handle_server_list_err():
    store = FakeStore(error=RuntimeError("not found"), fail_on={"list"})
    response = handle_server_list(store)(make_request(path="/api/servers"))
    assert response.status_code == 500
    assert body(response)["message"] == "not found"


def test_handle_server_find():
    server = Server(name="server1", capacity=1)
    handler = handle_server_find(FakeStore([server]))
    response = handler(make_request(path="/api/servers/server1"), name="server1")
    assert response.status_code == 200
    assert Server.from_dict(body(response)) == server


def test_handle_server_find_err():
    store = FakeStore(error=RuntimeError("not found"), fail_on={"find"})
    response = handle_server_find(store)(make_request(path="/api/servers/server1"), name="server1")
    assert response.status_code == 404
    assert body(response)["message"] == "not found"


def test_handle_server_create():
    store = FakeStore()
    response = handle_server_create(store, "", 0)(make_request("POST", "/api/servers"))
    assert response.status_code == 200
    created = Server.from_dict(body(response))
    assert len(created.name) == 8
    assert created.state == ServerState.PENDING
    assert list(store.servers) == [created.name]


def test_handle_server_create_uses_prefix_and_capacity():
    store = FakeStore()
    response = handle_server_create(store, "agent-", 3)(make_request("POST", "/api/servers"))
    created = Server.from_dict(body(response))
    assert created.name.startswith("agent-")
    assert len(created.name) == len("agent-") + 8
    assert created.capacity == 3


def test_handle_server_create_failure():
    store = FakeStore(error=RuntimeError("oops"), fail_on={"create"})
    response = handle_server_create(store, "", 0)(make_request("POST", "/api/servers"))
    assert response.status_code == 500
    assert body(response)["message"] == "oops"


def sample_server(**overrides):
    fields = dict(name="i-5203422c", image="docker-18-04", region="nyc1", size="s-1vcpu-1gb")
    fields.update(overrides)
    return Server(**fields)


def test_handle_server_delete():
    server = sample_server()
    store = FakeStore([server])
    handler = handle_server_delete(store)
    response = handler(make_request("DELETE", "/api/servers/i-5203422c"), name="i-5203422c")
    assert response.status_code == 200
    assert server.state == ServerState.SHUTDOWN
    assert store.calls == ["find", "update"]
    assert body(response)["state"] == "shutdown"


def test_handle_server_delete_not_found():
    store = FakeStore(error=RuntimeError("not found"), fail_on={"find"})
    handler = handle_server_delete(store)
    response = handler(make_request("DELETE", "/api/servers/i-5203422c"), name="i-5203422c")
    assert response.status_code == 404
    assert body(response)["message"] == "not found"


def test_handle_server_delete_failure():
    store = FakeStore([sample_server()], error=RuntimeError("bad request"), fail_on={"update"})
    handler = handle_server_delete(store)
    response = handler(make_request("DELETE", "/api/servers/i-5203422c"), name="i-5203422c")
    assert response.status_code == 500
    assert body(response)["message"] == "bad request"


def test_handle_server_delete_error_state():
    store = FakeStore([sample_server(id="", state=ServerState.ERROR)])
    handler = handle_server_delete(store)
    response = handler(make_request("DELETE", "/api/servers/i-5203422c"), name="i-5203422c")
    assert response.status_code == 204
    assert store.calls == ["find", "delete"]
    assert store.servers == {}


def test_handle_server_force_delete_error_state():
    store = FakeStore([sample_server(id="i-5203422c", state=ServerState.ERROR)])
    handler = handle_server_delete(store)
    request = make_request("DELETE", "/api/servers/i-5203422c", query="force=true")
    response = handler(request, name="i-5203422c")
    assert response.status_code == 204
    assert store.calls == ["find", "delete"]


def test_handle_server_delete_error_state_with_id_without_force():
    server = sample_server(id="i-5203422c", state=ServerState.ERROR)
    store = FakeStore([server])
    handler = handle_server_delete(store)
    response = handler(make_request("DELETE", "/api/servers/i-5203422c"), name="i-5203422c")
    assert response.status_code == 200
    assert server.state == ServerState.SHUTDOWN
    assert store.calls == ["find", "update"]