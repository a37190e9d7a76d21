"""Tests for the HTTP endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette import status as st_status

from hostsharing_dyndns.config import HealthConfig
from hostsharing_dyndns.server import app, build_updater, lifespan

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from hostsharing_dyndns.config import Config


@pytest.fixture
def client(monkeypatch, config: Config) -> Iterator[TestClient]:
    """Create a test client with a fresh zone state."""
    monkeypatch.setattr("hostsharing_dyndns.server._config", config)
    monkeypatch.setattr("hostsharing_dyndns.server._updater", None)

    # Use context manager to ensure lifespan events are triggered
    with TestClient(app) as test_client:
        yield test_client


class TestUpdateEndpoint:
    """End-to-end tests for GET /."""

    def test_update_ipv4(self, client: TestClient, zonefile_path: Path):
        response = client.get(
            "/",
            params={"user": "baz", "passwd": ".test.", "ipaddr": "192.168.1.1"},
        )

        assert response.status_code == st_status.HTTP_200_OK
        assert response.text == "Ok\n"
        assert response.headers["content-type"].startswith("text/plain")
        assert "foobar.{DOM_HOSTNAME}. 60 IN A 192.168.1.1" in (
            zonefile_path.read_text(encoding="utf-8")
        )

    def test_update_both_families(self, client: TestClient, zonefile_path: Path):
        response = client.get(
            "/",
            params={
                "user": "baz",
                "passwd": ".test.",
                "ipaddr": "192.168.1.1",
                "ip6addr": "2001:db8::1",
            },
        )

        assert response.status_code == st_status.HTTP_200_OK
        assert zonefile_path.read_text(encoding="utf-8") == (
            "{DEFAULT}\n"
            "foobar.{DOM_HOSTNAME}. 60 IN A 192.168.1.1\n"
            "foobar.{DOM_HOSTNAME}. 60 IN AAAA 2001:db8::1\n"
        )

    def test_update_without_addresses(self, client: TestClient, zonefile_path: Path):
        response = client.get("/", params={"user": "baz", "passwd": ".test."})

        assert response.status_code == st_status.HTTP_200_OK
        assert zonefile_path.read_text(encoding="utf-8") == "{DEFAULT}\n"

    @pytest.mark.parametrize(
        "params",
        [
            {},
            {"user": "baz"},
            {"user": "baz", "passwd": ""},
            {"passwd": ".test."},
            {"user": "", "passwd": ".test."},
            {"user": "foobar", "passwd": ".test."},
            {"user": "baz", "passwd": "..test.."},
        ],
    )
    def test_authentication_failure(
        self,
        client: TestClient,
        zonefile_path: Path,
        params: dict[str, str],
    ):
        zonefile_path.write_text("previous\n", encoding="utf-8")

        response = client.get("/", params={**params, "ipaddr": "192.168.1.1"})

        assert response.status_code == st_status.HTTP_401_UNAUTHORIZED
        assert response.text == "user or password wrong\n"
        assert zonefile_path.read_text(encoding="utf-8") == "previous\n"

    @pytest.mark.parametrize(
        ("addresses", "body"),
        [
            ({"ipaddr": "2001:db8::1"}, "ipaddr is incorrect\n"),
            ({"ipaddr": "not-an-ip"}, "ipaddr is incorrect\n"),
            ({"ip6addr": "192.168.1.1"}, "ip6addr is incorrect\n"),
            ({"ip6addr": "2001:db8::x"}, "ip6addr is incorrect\n"),
            (
                {"ipaddr": "a.168.1.1", "ip6addr": "2001:db8::x"},
                "ipaddr is incorrect\nip6addr is incorrect\n",
            ),
        ],
    )
    def test_invalid_address(
        self,
        client: TestClient,
        zonefile_path: Path,
        addresses: dict[str, str],
        body: str,
    ):
        response = client.get("/", params={"user": "baz", "passwd": ".test.", **addresses})

        assert response.status_code == st_status.HTTP_400_BAD_REQUEST
        assert response.text == body
        assert not zonefile_path.exists()

    def test_repeated_ipaddr_uses_first_value(
        self,
        client: TestClient,
        zonefile_path: Path,
    ):
        response = client.get(
            "/?user=baz&passwd=.test.&ipaddr=bad&ipaddr=192.168.1.1",
        )

        assert response.status_code == st_status.HTTP_400_BAD_REQUEST
        assert response.text == "ipaddr is incorrect\n"
        assert not zonefile_path.exists()

    def test_repeated_ipaddr_ignores_later_values(
        self,
        client: TestClient,
        zonefile_path: Path,
    ):
        response = client.get(
            "/?user=baz&passwd=.test.&ipaddr=192.168.1.1&ipaddr=bad",
        )

        assert response.status_code == st_status.HTTP_200_OK
        assert "IN A 192.168.1.1\n" in zonefile_path.read_text(encoding="utf-8")

    def test_repeated_user_uses_first_value(
        self,
        client: TestClient,
        zonefile_path: Path,
    ):
        response = client.get("/?user=mallory&user=baz&passwd=.test.")

        assert response.status_code == st_status.HTTP_401_UNAUTHORIZED
        assert response.text == "user or password wrong\n"
        assert not zonefile_path.exists()

    def test_authentication_checked_before_addresses(self, client: TestClient):
        response = client.get("/", params={"user": "baz", "ipaddr": "not-an-ip"})
        assert response.status_code == st_status.HTTP_401_UNAUTHORIZED

    def test_write_failure_returns_500(
        self,
        monkeypatch,
        config: Config,
        tmp_path: Path,
    ):
        # A directory cannot be opened for writing
        config.updater.filename = str(tmp_path)
        monkeypatch.setattr("hostsharing_dyndns.server._config", config)
        monkeypatch.setattr("hostsharing_dyndns.server._updater", build_updater(config))

        with TestClient(app) as test_client:
            response = test_client.get(
                "/",
                params={"user": "baz", "passwd": ".test.", "ipaddr": "192.168.1.1"},
            )

        assert response.status_code == st_status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.text == "cannot write zonefile\n"

    def test_post_not_allowed(self, client: TestClient):
        response = client.post("/", params={"user": "baz", "passwd": ".test."})
        assert response.status_code == st_status.HTTP_405_METHOD_NOT_ALLOWED

    def test_unknown_path(self, client: TestClient):
        response = client.get("/update")
        assert response.status_code == st_status.HTTP_404_NOT_FOUND
        assert response.text == "Not Found\n"


class TestLivenessEndpoint:
    """Tests for the /test endpoint.

    Since the /test route is dynamically registered based on config during
    lifespan startup, each test creates a fresh FastAPI app instance with the
    lifespan context manager.
    """

    def test_liveness_enabled(self, monkeypatch, config: Config):
        config.health = HealthConfig(enabled=True)
        monkeypatch.setattr("hostsharing_dyndns.server._config", config)
        monkeypatch.setattr("hostsharing_dyndns.server._updater", None)

        test_app = FastAPI(lifespan=lifespan)

        with TestClient(test_app) as test_client:
            response = test_client.get("/test")

            assert response.status_code == st_status.HTTP_200_OK
            assert response.text == "Hello World\n"

    def test_liveness_registered_once(self, monkeypatch, config: Config):
        config.health = HealthConfig(enabled=True)
        monkeypatch.setattr("hostsharing_dyndns.server._config", config)
        monkeypatch.setattr("hostsharing_dyndns.server._updater", None)

        test_app = FastAPI(lifespan=lifespan)

        # Each TestClient context runs the lifespan again
        for _ in range(3):
            with TestClient(test_app) as test_client:
                assert test_client.get("/test").status_code == st_status.HTTP_200_OK

        routes = [r for r in test_app.router.routes if getattr(r, "path", None) == "/test"]
        assert len(routes) == 1

    def test_liveness_disabled_returns_404(self, monkeypatch, config: Config):
        config.health = HealthConfig(enabled=False)
        monkeypatch.setattr("hostsharing_dyndns.server._config", config)
        monkeypatch.setattr("hostsharing_dyndns.server._updater", None)

        test_app = FastAPI(lifespan=lifespan)

        with TestClient(test_app) as test_client:
            response = test_client.get("/test")

            assert response.status_code == st_status.HTTP_404_NOT_FOUND
