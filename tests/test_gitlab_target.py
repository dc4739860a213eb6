"""Tests for the GitLab target against a mocked API."""

import asyncio
import json

import httpx
import pytest

from routerbackup.backup.errors import TargetSetupError
from routerbackup.backup.targets import GitLabTarget


class FakeGitLab:
    """Routes (method, raw path) to canned responses and records requests."""

    def __init__(self, routes):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.raw_path.decode().split("?", 1)[0]
        status, body = self.routes.get((request.method, path), (404, {"message": "404 Not Found"}))
        return httpx.Response(status, json=body)

    def sent(self, method):
        return [r for r in self.requests if r.method == method]


def gitlab_config(config, **overrides):
    values = dict(
        target="gitlab",
        gitlab_url="https://gitlab.example.com",
        gitlab_token="glpat-test",
        gitlab_project="routers",
    )
    values.update(overrides)
    return config.replace(**values)


def run(target, coro_fn):
    async def go():
        try:
            return await coro_fn()
        finally:
            await target.close()
    return asyncio.run(go())


def test_prepare_finds_existing_user_project(config):
    api = FakeGitLab({
        ("GET", "/api/v4/user"): (200, {"username": "netops"}),
        ("GET", "/api/v4/projects/netops%2Frouters"): (200, {"id": 7}),
    })
    target = GitLabTarget(gitlab_config(config), transport=httpx.MockTransport(api))

    run(target, target.prepare)

    assert target.project_id == 7
    assert target.group_id is None
    assert api.sent("POST") == []
    assert api.requests[0].headers["PRIVATE-TOKEN"] == "glpat-test"


def test_prepare_creates_missing_group_and_project(config):
    api = FakeGitLab({
        ("POST", "/api/v4/groups"): (201, {"id": 3}),
        ("POST", "/api/v4/projects"): (201, {"id": 9}),
    })
    target = GitLabTarget(
        gitlab_config(config, gitlab_group="backups"),
        transport=httpx.MockTransport(api),
    )

    run(target, target.prepare)

    assert target.group_id == 3
    assert target.project_id == 9
    group_body, project_body = [json.loads(r.content) for r in api.sent("POST")]
    assert group_body == {"name": "backups", "path": "backups"}
    assert project_body == {"name": "routers", "path": "routers", "namespace_id": 3}


def test_prepare_api_error_is_setup_error(config):
    api = FakeGitLab({("GET", "/api/v4/user"): (500, {"message": "boom"})})
    target = GitLabTarget(gitlab_config(config), transport=httpx.MockTransport(api))

    with pytest.raises(TargetSetupError):
        run(target, target.prepare)


def test_group_creation_refused(config):
    api = FakeGitLab({("POST", "/api/v4/groups"): (403, {"message": "forbidden"})})
    target = GitLabTarget(
        gitlab_config(config, gitlab_group="backups"),
        transport=httpx.MockTransport(api),
    )

    with pytest.raises(TargetSetupError, match="group"):
        run(target, target.prepare)


def test_put_creates_new_file(config):
    api = FakeGitLab({
        ("POST", "/api/v4/projects/7/repository/files/gw1_10.0.0.1%2Fbackup.rsc"): (201, {}),
    })
    target = GitLabTarget(gitlab_config(config), transport=httpx.MockTransport(api))
    target.project_id = 7

    run(target, lambda: target.put("gw1_10.0.0.1/backup.rsc", "/ip address", "msg", "text"))

    head, post = api.requests
    assert head.method == "HEAD"
    assert head.url.params["ref"] == "master"
    assert post.method == "POST"
    assert json.loads(post.content) == {
        "branch": "master",
        "content": "/ip address",
        "commit_message": "msg",
        "encoding": "text",
    }


def test_put_updates_existing_file(config):
    file_path = "/api/v4/projects/7/repository/files/gw1_10.0.0.1%2Fbackup.backup"
    api = FakeGitLab({
        ("HEAD", file_path): (200, {}),
        ("PUT", file_path): (200, {}),
    })
    target = GitLabTarget(
        gitlab_config(config, gitlab_branch="main"),
        transport=httpx.MockTransport(api),
    )
    target.project_id = 7

    run(target, lambda: target.put("gw1_10.0.0.1/backup.backup", "AAEC", "msg", "base64"))

    put = api.sent("PUT")[0]
    assert json.loads(put.content)["branch"] == "main"
    assert json.loads(put.content)["encoding"] == "base64"
    assert api.sent("POST") == []


def test_put_error_propagates(config):
    api = FakeGitLab({})
    target = GitLabTarget(gitlab_config(config), transport=httpx.MockTransport(api))
    target.project_id = 7

    with pytest.raises(httpx.HTTPStatusError):
        run(target, lambda: target.put("a/backup.rsc", "x", "msg"))


def test_put_requires_prepare(config):
    target = GitLabTarget(gitlab_config(config), transport=httpx.MockTransport(FakeGitLab({})))

    with pytest.raises(RuntimeError):
        run(target, lambda: target.put("a/backup.rsc", "x", "msg"))
