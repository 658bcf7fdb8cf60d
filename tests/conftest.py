"""Shared fixtures: an in-memory object store and a small local site."""

import pytest

from buckethop import ObjectStore, RemoteObject, Settings, StorageError


class MemoryStore(ObjectStore):
    """Object store keeping buckets in dictionaries, recording every write."""

    def __init__(self, buckets=None, websites=None):
        self.buckets = {name: dict(objects) for name, objects in (buckets or {}).items()}
        self.websites = dict(websites or {})
        self.calls = []

    def bucket_exists(self, name):
        return name in self.buckets

    def list_objects(self, bucket):
        objects = self.buckets[bucket]
        for key in sorted(objects):
            yield RemoteObject(key, lambda key=key: objects[key])

    def put_object(self, bucket, key, content):
        self.calls.append(("put", key))
        self.buckets[bucket][key] = content

    def delete_object(self, bucket, key):
        self.calls.append(("delete", key))
        del self.buckets[bucket][key]

    def create_bucket(self, name):
        if name in self.buckets:
            raise StorageError(f"Failed to create bucket '{name}': already exists")
        self.buckets[name] = {}

    def configure_website(self, bucket, index_key, error_key):
        self.calls.append(("website", index_key, error_key))
        self.websites[bucket] = (index_key, error_key)

    def is_website_configured(self, bucket):
        return bucket in self.websites


@pytest.fixture
def site_dir(tmp_path):
    root = tmp_path / "_site"
    (root / "css").mkdir(parents=True)
    (root / "a.html").write_text("<h1>a</h1>")
    (root / "css" / "b.css").write_text("body { color: black; }")
    return root


@pytest.fixture
def make_settings(site_dir):
    def _make(**overrides):
        values = {"bucket_name": "example-site", "site_dir": str(site_dir)}
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def store():
    return MemoryStore(buckets={"example-site": {}})
