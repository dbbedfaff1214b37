"""Shared fixtures: an in-memory Secret Manager that several storages can share."""
import itertools
import time
import uuid
from collections import defaultdict
from datetime import datetime, timezone

import pytest
from google.api_core import exceptions as gcp_exceptions
from google.cloud import secretmanager

from gcp_secret_storage.storage.domains.gcp_client import GCPSecretClient
from gcp_secret_storage.storage.workflows.storage_operations import SecretManagerStorage

PROJECT_ID = "test-project"


class FakeSecretManagerBackend:
    """Remote state shared by every client built on it, like a real project."""

    def __init__(self, project_id: str = PROJECT_ID):
        self.parent = f"projects/{project_id}"
        self.secrets = {}  # secret path -> {"etag", "ttl", "versions": [(name, etag, created, data)]}
        self.requests = defaultdict(list)
        self.failures = defaultdict(list)
        self.hide_from_listing = set()
        self.latency = {}  # method -> seconds each call takes
        self._clock = itertools.count(1)

    def fail_next(self, method: str, exc: Exception, times: int = 1) -> None:
        self.failures[method].extend([exc] * times)

    def clear_failures(self) -> None:
        self.failures.clear()

    def touch(self, secret_id: str) -> None:
        """Change a secret's etag, as a concurrent writer would."""
        self.secrets[f"{self.parent}/secrets/{secret_id}"]["etag"] = f'"{uuid.uuid4().hex}"'

    def record(self, method: str, request, timeout) -> None:
        self.requests[method].append((request, timeout))
        if method in self.latency:
            time.sleep(self.latency[method])
        if self.failures[method]:
            raise self.failures[method].pop(0)

    def secret_ids(self):
        return [path.rsplit("/", 1)[-1] for path in self.secrets]


class FakeTransport:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class FakeSecretManagerClient:
    """Implements the subset of SecretManagerServiceClient the storage calls."""

    def __init__(self, backend: FakeSecretManagerBackend):
        self.backend = backend
        self.transport = FakeTransport()

    def _secret(self, path: str):
        try:
            return self.backend.secrets[path]
        except KeyError:
            raise gcp_exceptions.NotFound(f"Secret [{path}] not found")

    def create_secret(self, request=None, timeout=None):
        self.backend.record("create_secret", request, timeout)
        path = f"{request['parent']}/secrets/{request['secret_id']}"
        if path in self.backend.secrets:
            raise gcp_exceptions.AlreadyExists(f"Secret [{path}] already exists")
        etag = f'"{uuid.uuid4().hex}"'
        self.backend.secrets[path] = {
            "etag": etag,
            "ttl": request["secret"].get("ttl"),
            "versions": [],
        }
        return secretmanager.Secret(name=path, etag=etag)

    def add_secret_version(self, request=None, timeout=None):
        self.backend.record("add_secret_version", request, timeout)
        secret = self._secret(request["parent"])
        number = len(secret["versions"]) + 1
        name = f"{request['parent']}/versions/{number}"
        etag = f'"{uuid.uuid4().hex}"'
        created = datetime.fromtimestamp(1700000000 + next(self.backend._clock), tz=timezone.utc)
        secret["versions"].append((name, etag, created, request["payload"]["data"]))
        return secretmanager.SecretVersion(name=name, etag=etag, create_time=created)

    def list_secrets(self, request=None, timeout=None):
        self.backend.record("list_secrets", request, timeout)
        term = (request.get("filter") or "").replace("name:", "", 1)
        matches = [
            secretmanager.Secret(name=path, etag=secret["etag"])
            for path, secret in list(self.backend.secrets.items())
            if term in path.rsplit("/", 1)[-1]
            and path.rsplit("/", 1)[-1] not in self.backend.hide_from_listing
        ]
        return iter(matches)

    def _version(self, name: str):
        secret_path, _, version_id = name.rpartition("/versions/")
        versions = self._secret(secret_path)["versions"]
        if not versions:
            raise gcp_exceptions.NotFound(f"Secret Version [{name}] not found")
        if version_id == "latest":
            return versions[-1]
        for version in versions:
            if version[0] == name:
                return version
        raise gcp_exceptions.NotFound(f"Secret Version [{name}] not found")

    def get_secret_version(self, request=None, timeout=None):
        self.backend.record("get_secret_version", request, timeout)
        name, etag, created, _ = self._version(request["name"])
        return secretmanager.SecretVersion(name=name, etag=etag, create_time=created)

    def access_secret_version(self, request=None, timeout=None):
        self.backend.record("access_secret_version", request, timeout)
        name, _, _, data = self._version(request["name"])
        return secretmanager.AccessSecretVersionResponse(
            name=name, payload=secretmanager.SecretPayload(data=data)
        )

    def delete_secret(self, request=None, timeout=None):
        self.backend.record("delete_secret", request, timeout)
        secret = self._secret(request["name"])
        etag = request.get("etag")
        if etag and etag != secret["etag"]:
            raise gcp_exceptions.FailedPrecondition(
                f"etag mismatch for [{request['name']}]"
            )
        del self.backend.secrets[request["name"]]


@pytest.fixture
def backend():
    """Fresh remote state for each test."""
    return FakeSecretManagerBackend()


@pytest.fixture
def make_storage(backend):
    """Factory for independent storages (separate caches and lock tables) on one backend."""
    def _make(lock_timeout: float = 1.0) -> SecretManagerStorage:
        client = GCPSecretClient(PROJECT_ID, client=FakeSecretManagerClient(backend))
        storage = SecretManagerStorage(client, lock_timeout=lock_timeout)
        storage.locks.base_delay = 0.01
        return storage
    return _make


@pytest.fixture
def storage(make_storage):
    return make_storage()
