#!/usr/bin/env python3
"""
BucketHop - static site deployment to object storage
Syncs files from a local site directory to an S3 bucket (or a Bunny.net
storage zone) and mirrors a bucket back to a local directory
"""

__version__ = "1.0.0"

import os
import sys
import json
import logging
import mimetypes
import posixpath
import urllib.parse
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Iterator, List, Mapping, Optional, Tuple

import requests
import yaml
import argparse
from dataclasses import asdict, dataclass, fields
from datetime import datetime

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
DEFAULT_CONFIG_FILE = "_deploy.yml"
DEFAULT_SITE_DIR = "_site"
DEFAULT_BUNNY_ENDPOINT = "https://storage.bunnycdn.com"
STORAGE_TYPES = ("s3", "bunny")

# Environment variables consulted when an option is not set explicitly
ENV_FALLBACKS = {
    "s3": {
        "access_key_id": "AWS_ACCESS_KEY_ID",
        "secret_access_key": "AWS_SECRET_ACCESS_KEY",
        "region": "AWS_DEFAULT_REGION",
    },
    "bunny": {
        "secret_access_key": "BUNNY_API_KEY",
    },
}


class SyncError(Exception):
    """Base class for all BucketHop errors."""


class FatalConfigError(SyncError):
    """Raised when the user has to fix the configuration before retrying."""


class ConfigError(FatalConfigError):
    """Raised for a missing or invalid configuration file or option."""


class StorageClientMissingError(FatalConfigError):
    """Raised when the storage client library is not installed."""


class BucketNotFoundError(FatalConfigError):
    """Raised when the configured bucket does not exist."""

    def __init__(self, bucket_name: str):
        self.bucket_name = bucket_name
        super().__init__(
            f"Bucket not found: '{bucket_name}'. Check your configuration or "
            f"create a bucket using: `buckethop add_bucket`"
        )


class StorageError(SyncError):
    """Raised when a single storage operation fails."""


def _parse_bool(name: str, value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "on", "1"):
            return True
        if lowered in ("false", "no", "off", "0"):
            return False
    raise ConfigError(f"Option '{name}' must be true or false, got {value!r}")


# Configuration
@dataclass
class Options:
    """Raw options as collected from a config file and the command line.

    Every field is None when unset, so an explicit ``delete: false`` can be
    told apart from a missing ``delete`` key.
    """
    bucket_name: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: Optional[str] = None
    remote_path: Optional[str] = None
    site_dir: Optional[str] = None
    dir: Optional[str] = None
    delete: Optional[bool] = None
    verbose: Optional[bool] = None
    index_page: Optional[str] = None
    error_page: Optional[str] = None
    storage: Optional[str] = None
    endpoint_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping) -> 'Options':
        """Build options from a parsed config mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration option(s): {', '.join(unknown)}")

        values = {}
        for name, value in data.items():
            if value is None:
                continue
            if name in ("delete", "verbose"):
                values[name] = _parse_bool(name, value)
            else:
                values[name] = str(value)
        return cls(**values)

    @classmethod
    def load_from_file(cls, config_file: str = DEFAULT_CONFIG_FILE, required: bool = True) -> 'Options':
        """Load options from a YAML or JSON configuration file."""
        # If config_file is just a filename (no path), search in multiple locations
        if not os.path.dirname(config_file):
            search_paths = [
                os.path.join(os.getcwd(), config_file),
                os.path.expanduser(f"~/{config_file}"),
            ]
            for config_path in search_paths:
                if os.path.exists(config_path):
                    config_file = config_path
                    break
            else:
                if not required:
                    return cls()
                locations = '\n  '.join(search_paths)
                raise ConfigError(
                    f"Configuration file '{config_file}' not found.\n"
                    f"Searched in the following locations:\n  {locations}\n"
                    f"Create one with `buckethop init` or specify the full path."
                )
        elif not os.path.exists(config_file):
            if not required:
                return cls()
            raise ConfigError(f"Configuration file '{config_file}' not found.")

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                if config_file.endswith('.json'):
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in configuration file '{config_file}': {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in configuration file '{config_file}': {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file '{config_file}' must contain a mapping of options")

        logger.debug("Loaded configuration from %s", config_file)
        return cls.from_dict(data)

    def merge(self, overrides: 'Options') -> 'Options':
        """Return a copy with every option set in ``overrides`` applied on top."""
        values = asdict(self)
        for name, value in asdict(overrides).items():
            if value is not None:
                values[name] = value
        return Options(**values)


@dataclass(frozen=True)
class Settings:
    """Fully resolved, immutable configuration for one invocation."""
    bucket_name: str
    site_dir: str = DEFAULT_SITE_DIR
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: str = DEFAULT_REGION
    remote_path: str = ""
    pull_dir: Optional[str] = None
    delete: bool = False
    verbose: bool = True
    index_page: Optional[str] = None
    error_page: Optional[str] = None
    storage: str = "s3"
    endpoint_url: Optional[str] = None


def resolve_settings(options: Options, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Resolve options into settings: explicit value, then environment, then default."""
    if environ is None:
        environ = os.environ

    storage = options.storage or "s3"
    if storage not in STORAGE_TYPES:
        raise ConfigError(f"Unknown storage type '{storage}' (expected one of: {', '.join(STORAGE_TYPES)})")
    if not options.bucket_name:
        raise ConfigError("No bucket_name configured. Set it in your config file or pass --bucket.")

    env_names = ENV_FALLBACKS[storage]

    def layered(name: str, default=None):
        value = getattr(options, name)
        if value is not None:
            return value
        env_name = env_names.get(name)
        if env_name and environ.get(env_name):
            return environ[env_name]
        return default

    return Settings(
        bucket_name=options.bucket_name,
        site_dir=os.path.expanduser(options.site_dir or DEFAULT_SITE_DIR),
        access_key_id=layered("access_key_id"),
        secret_access_key=layered("secret_access_key"),
        region=layered("region", DEFAULT_REGION),
        remote_path=(options.remote_path or "/").strip("/"),
        pull_dir=os.path.expanduser(options.dir) if options.dir else None,
        delete=options.delete if options.delete is not None else False,
        verbose=options.verbose if options.verbose is not None else True,
        index_page=options.index_page,
        error_page=options.error_page,
        storage=storage,
        endpoint_url=options.endpoint_url,
    )


def default_config(options: Optional[Options] = None) -> str:
    """Return the commented default configuration document for a config file."""
    options = options or Options()

    def line(setting: str, comment: str) -> str:
        return f"{setting.ljust(40)}  # {comment}"

    def flag(value: Optional[bool]) -> str:
        return 'true' if value is None else str(value).lower()

    lines = [
        line(f"bucket_name: {options.bucket_name or ''}", "Name of the S3 bucket where these files will be stored."),
        line(f"access_key_id: {options.access_key_id or ''}", "Get this from your AWS console at aws.amazon.com."),
        line(f"secret_access_key: {options.secret_access_key or ''}", "Keep it safe; keep it secret. Keep this file in your .gitignore."),
        line(f"remote_path: {options.remote_path or '/'}", "relative path on bucket where files should be copied."),
        "",
        line(f"# region: {options.region or DEFAULT_REGION}", "Region where your bucket is located."),
        line(f"# delete: {flag(options.delete)}", "Remove files from destination which do not match source files."),
        line(f"# verbose: {flag(options.verbose)}", "Print out all file operations."),
    ]
    return "\n".join(lines) + "\n"


# Colors for terminal output
class Colors:
    GREEN = '\033[0;32m'
    YELLOW = '\033[0;33m'
    RED = '\033[0;31m'
    BLUE = '\033[0;34m'
    BOLD = '\033[1m'
    NC = '\033[0m'  # No Color


def pluralize(word: str, count: int) -> str:
    return word if count == 1 else f"{word}s"


def within_prefix(key: str, prefix: str) -> bool:
    """Check whether a key lives under a remote path prefix, segment by segment."""
    if not prefix:
        return True
    return key == prefix or key.startswith(prefix + '/')


@dataclass
class RemoteObject:
    """An object reported by a bucket listing; content is fetched on demand."""
    key: str
    loader: Callable[[], bytes]

    def read(self) -> bytes:
        return self.loader()


class ObjectStore(ABC):
    """Storage operations BucketHop needs from an object storage service."""

    @abstractmethod
    def bucket_exists(self, name: str) -> bool:
        ...

    @abstractmethod
    def list_objects(self, bucket: str) -> Iterator[RemoteObject]:
        ...

    @abstractmethod
    def put_object(self, bucket: str, key: str, content: bytes) -> None:
        ...

    @abstractmethod
    def delete_object(self, bucket: str, key: str) -> None:
        ...

    @abstractmethod
    def create_bucket(self, name: str) -> None:
        ...

    @abstractmethod
    def configure_website(self, bucket: str, index_key: str, error_key: str) -> None:
        ...

    @abstractmethod
    def is_website_configured(self, bucket: str) -> bool:
        ...


def _error_code(error) -> str:
    return getattr(error, "response", {}).get("Error", {}).get("Code", "")


def _content_type(key: str) -> str:
    return mimetypes.guess_type(key)[0] or 'application/octet-stream'


class S3Store(ObjectStore):
    """Amazon S3 (or S3-compatible) storage through boto3."""

    NOT_FOUND_CODES = ("404", "NoSuchBucket", "NotFound")

    def __init__(self, access_key_id: Optional[str] = None, secret_access_key: Optional[str] = None,
                 region: str = DEFAULT_REGION, endpoint_url: Optional[str] = None):
        try:
            import boto3
            from botocore.exceptions import BotoCoreError, ClientError
        except ImportError:
            raise StorageClientMissingError("Please install the boto3 package first: pip install boto3") from None

        self.region = region
        self._errors = (BotoCoreError, ClientError)

        session = boto3.session.Session(
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
        )
        client_kwargs = {}
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        self.client = session.client("s3", **client_kwargs)
        logger.debug("S3 client created (region=%s, endpoint=%s)", region, endpoint_url or "default")

    def bucket_exists(self, name: str) -> bool:
        try:
            self.client.head_bucket(Bucket=name)
            return True
        except self._errors as e:
            if _error_code(e) in self.NOT_FOUND_CODES:
                return False
            raise StorageError(f"Error checking bucket '{name}': {e}") from e

    def list_objects(self, bucket: str) -> Iterator[RemoteObject]:
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=bucket):
                for item in page.get("Contents", []):
                    key = item["Key"]
                    yield RemoteObject(key, lambda key=key: self._read(bucket, key))
        except self._errors as e:
            raise StorageError(f"Error listing bucket '{bucket}': {e}") from e

    def _read(self, bucket: str, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except self._errors as e:
            raise StorageError(f"Download failed: {key} - {e}") from e

    def put_object(self, bucket: str, key: str, content: bytes) -> None:
        try:
            self.client.put_object(Bucket=bucket, Key=key, Body=content, ContentType=_content_type(key))
        except self._errors as e:
            raise StorageError(f"Upload failed: {key} - {e}") from e
        logger.debug("Uploaded s3://%s/%s (%d bytes)", bucket, key, len(content))

    def delete_object(self, bucket: str, key: str) -> None:
        try:
            self.client.delete_object(Bucket=bucket, Key=key)
        except self._errors as e:
            raise StorageError(f"Delete failed: {key} - {e}") from e
        logger.debug("Deleted s3://%s/%s", bucket, key)

    def create_bucket(self, name: str) -> None:
        kwargs = {"Bucket": name}
        # us-east-1 rejects an explicit location constraint
        if self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self.client.create_bucket(**kwargs)
        except self._errors as e:
            raise StorageError(f"Failed to create bucket '{name}': {e}") from e

    def configure_website(self, bucket: str, index_key: str, error_key: str) -> None:
        try:
            self.client.put_bucket_website(
                Bucket=bucket,
                WebsiteConfiguration={
                    "IndexDocument": {"Suffix": index_key},
                    "ErrorDocument": {"Key": error_key},
                },
            )
        except self._errors as e:
            raise StorageError(f"Failed to configure website for bucket '{bucket}': {e}") from e

    def is_website_configured(self, bucket: str) -> bool:
        try:
            self.client.get_bucket_website(Bucket=bucket)
            return True
        except self._errors as e:
            if _error_code(e) == "NoSuchWebsiteConfiguration":
                return False
            raise StorageError(f"Error reading website configuration for bucket '{bucket}': {e}") from e


class BunnyStore(ObjectStore):
    """Bunny.net Edge Storage; storage zones play the part of buckets."""

    def __init__(self, api_key: Optional[str], endpoint_url: Optional[str] = None, timeout: int = 30):
        self.endpoint_url = (endpoint_url or DEFAULT_BUNNY_ENDPOINT).rstrip('/')
        self.timeout = timeout
        self.session = self._create_session(api_key)

    def _create_session(self, api_key: Optional[str]) -> requests.Session:
        """Create a requests session with the storage zone headers."""
        session = requests.Session()
        session.headers.update({
            'AccessKey': api_key or '',
            'User-Agent': f'BucketHop/{__version__}'
        })
        return session

    def _url(self, zone: str, path: str = "") -> str:
        return f"{self.endpoint_url}/{urllib.parse.quote(zone)}/{urllib.parse.quote(path, safe='/')}"

    def _request(self, method: str, url: str, description: str, ok: Tuple[int, ...] = (200,), **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise StorageError(f"{description} - {e}") from e

        logger.debug("%s %s -> HTTP %s", method, url, response.status_code)
        if response.status_code not in ok:
            raise StorageError(f"{description} (HTTP {response.status_code})")
        return response

    def bucket_exists(self, name: str) -> bool:
        response = self._request("GET", self._url(name), f"Error checking storage zone '{name}'", ok=(200, 401, 404))
        return response.status_code == 200

    def list_objects(self, bucket: str) -> Iterator[RemoteObject]:
        yield from self._list_directory(bucket, "")

    def _list_directory(self, zone: str, current_path: str) -> Iterator[RemoteObject]:
        """Recursively list files below a directory of the storage zone."""
        response = self._request(
            "GET", self._url(zone, current_path), f"Error fetching directory '{current_path or '/'}'", ok=(200, 404)
        )
        if response.status_code == 404:
            # Directory doesn't exist, which is fine
            return

        items = response.json()
        if not isinstance(items, list):
            return

        for item in items:
            object_name = item.get('ObjectName', '')
            if not object_name:
                continue

            path = f"{current_path}{object_name}"
            if item.get('IsDirectory', False):
                yield from self._list_directory(zone, path + '/')
            else:
                yield RemoteObject(path, lambda path=path: self._read(zone, path))

    def _read(self, zone: str, key: str) -> bytes:
        return self._request("GET", self._url(zone, key), f"Download failed: {key}").content

    def put_object(self, bucket: str, key: str, content: bytes) -> None:
        self._request(
            "PUT", self._url(bucket, key), f"Upload failed: {key}", ok=(200, 201),
            data=content, headers={'Content-Type': _content_type(key)},
        )

    def delete_object(self, bucket: str, key: str) -> None:
        # 404 is OK - file already gone
        self._request("DELETE", self._url(bucket, key), f"Delete failed: {key}", ok=(200, 204, 404))

    def create_bucket(self, name: str) -> None:
        raise StorageError(
            f"Storage zones can't be created through the storage API. "
            f"Create '{name}' in the Bunny.net dashboard."
        )

    def configure_website(self, bucket: str, index_key: str, error_key: str) -> None:
        # Storage zones are served through pull zones; there is nothing to set on the zone itself
        logger.debug("Skipping website configuration for storage zone '%s'", bucket)

    def is_website_configured(self, bucket: str) -> bool:
        return True


def create_store(settings: Settings) -> ObjectStore:
    """Connect to the storage backend selected in the settings."""
    if settings.storage == "bunny":
        return BunnyStore(settings.secret_access_key, endpoint_url=settings.endpoint_url)
    return S3Store(
        access_key_id=settings.access_key_id,
        secret_access_key=settings.secret_access_key,
        region=settings.region,
        endpoint_url=settings.endpoint_url,
    )


# Statistics tracking
@dataclass
class SyncStats:
    files_uploaded: int = 0
    files_deleted: int = 0
    files_pulled: int = 0


class SiteSync:
    """Mirrors a local site directory into a bucket, or a bucket into a directory.

    Local files, their destination keys and the deletable keys are computed
    lazily and cached for the duration of one push or pull.
    """

    def __init__(self, settings: Settings, store: Optional[ObjectStore] = None):
        self.settings = settings
        self.store = store
        self._reset()
        if self.store is None:
            self.connect()

    def connect(self) -> ObjectStore:
        """Connect to the storage backend using the resolved credentials and region."""
        self.store = create_store(self.settings)
        return self.store

    def _reset(self):
        self.stats = SyncStats()
        self._site_files: Optional[List[Path]] = None
        self._site_files_dest: Optional[List[str]] = None
        self._deletable: Optional[List[str]] = None

    @property
    def bucket_name(self) -> str:
        return self.settings.bucket_name

    def print_msg(self, message: str, color: str = Colors.NC):
        """Print formatted message with timestamp."""
        timestamp = datetime.now().strftime("%H:%M:%S")
        print(f"[{timestamp}] {color}{message}{Colors.NC}")

    def progress(self, symbol: str, key: str):
        """Report one file operation as a log line or a single progress character."""
        if self.settings.verbose:
            print(f"{symbol} {key}", flush=True)
        else:
            print(symbol, end='', flush=True)

    def _require_bucket(self):
        if not self.store.bucket_exists(self.bucket_name):
            raise BucketNotFoundError(self.bucket_name)

    def push(self) -> SyncStats:
        """Upload every site file, delete stale remote files and report the result."""
        self._reset()
        self._require_bucket()

        self.print_msg(f"Syncing {self.settings.site_dir} files to {self.bucket_name} on {self.settings.storage.upper()}.", Colors.BLUE)
        self.write_files()
        if self.delete_files_enabled():
            self.delete_files()

        print()
        print(self.status_message())
        if not self.store.is_website_configured(self.bucket_name):
            self.configure_website()
        return self.stats

    def pull(self) -> SyncStats:
        """Download every object of the bucket into the pull directory.

        Existing local files are overwritten; local files missing from the
        bucket are left alone.
        """
        self._reset()
        if not self.settings.pull_dir:
            raise ConfigError("No pull directory configured. Pass --dir or set 'dir' in your config file.")
        self._require_bucket()

        pull_root = Path(self.settings.pull_dir)
        resolved_root = pull_root.resolve()
        self.print_msg(f"Syncing {self.bucket_name} files to {pull_root}.", Colors.BLUE)

        for remote_object in self.store.list_objects(self.bucket_name):
            key = remote_object.key.lstrip('/')
            if not key or key.endswith('/'):
                continue

            path = pull_root / key
            if not path.resolve().is_relative_to(resolved_root):
                self.print_msg(f"Skipping object outside of {pull_root}: {remote_object.key}", Colors.YELLOW)
                continue

            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(remote_object.read())
            except OSError as e:
                # e.g. both "docs" and "docs/a.html" exist in the bucket
                self.print_msg(f"Skipping {remote_object.key}: {e}", Colors.YELLOW)
                continue
            self.stats.files_pulled += 1
            self.progress('+', key)

        if not self.settings.verbose:
            print()
        self.print_msg(
            f"Success: {self.stats.files_pulled} {pluralize('file', self.stats.files_pulled)} pulled.", Colors.GREEN
        )
        return self.stats

    def write_files(self):
        """Write site files to the selected bucket."""
        files = self.site_files()
        if self.settings.verbose:
            print(f"Writing {len(files)} {pluralize('file', len(files))}:")

        for path, key in zip(files, self.site_files_dest()):
            self.store.put_object(self.bucket_name, key, path.read_bytes())
            self.stats.files_uploaded += 1
            self.progress('+', key)

    def delete_files(self):
        """Delete files from the bucket, to ensure a 1:1 match with site files."""
        deletable = self.deletable_keys()
        if not deletable:
            return

        if self.settings.verbose:
            print(f"Deleting {len(deletable)} {pluralize('file', len(deletable))}:")
        for key in deletable:
            self.store.delete_object(self.bucket_name, key)
            self.stats.files_deleted += 1
            self.progress('-', key)

    def delete_files_enabled(self) -> bool:
        return bool(self.settings.delete)

    def site_files(self) -> List[Path]:
        """Local site files, in a stable order."""
        if self._site_files is None:
            site_path = Path(self.settings.site_dir)
            if not site_path.is_dir():
                raise ConfigError(f"Source directory does not exist: {self.settings.site_dir}")
            self._site_files = sorted(path for path in site_path.rglob('*') if path.is_file())
        return self._site_files

    def site_files_dest(self) -> List[str]:
        """Destination keys for local site files."""
        if self._site_files_dest is None:
            self._site_files_dest = [self.remote_key(path) for path in self.site_files()]
        return self._site_files_dest

    def remote_key(self, path) -> str:
        """Replace the local site directory with the remote path."""
        relative = Path(path).relative_to(self.settings.site_dir).as_posix()
        return posixpath.join(self.settings.remote_path, relative).lstrip('/')

    def remote_page(self, name: str) -> str:
        return posixpath.join(self.settings.remote_path, name).lstrip('/')

    def deletable_keys(self) -> List[str]:
        """Keys in the bucket with no local counterpart.

        Only keys beneath the remote path are ever considered.
        """
        if not self.delete_files_enabled():
            return []
        if self._deletable is None:
            local_keys = set(self.site_files_dest())
            remote_keys = {remote_object.key for remote_object in self.store.list_objects(self.bucket_name)}
            self._deletable = sorted(
                key for key in remote_keys - local_keys
                if within_prefix(key, self.settings.remote_path)
            )
        return self._deletable

    def add_bucket(self):
        """Create a new bucket and set it up for website hosting."""
        self.store.create_bucket(self.bucket_name)
        self.print_msg(f"Created new bucket '{self.bucket_name}' in region '{self.settings.region}'.", Colors.GREEN)
        self.configure_website()

    def configure_website(self, index_page: Optional[str] = None, error_page: Optional[str] = None) -> Tuple[str, str]:
        index_page = index_page or self.settings.index_page or self.remote_page('index.html')
        error_page = error_page or self.settings.error_page or self.remote_page('404.html')

        if '/' in index_page and self.settings.storage == "s3":
            self.print_msg(
                f"Note: S3 rejects an index document suffix containing '/' ({index_page}). "
                f"Set index_page in your config file when using remote_path.", Colors.YELLOW
            )

        self.store.configure_website(self.bucket_name, index_page, error_page)
        self.print_msg(f"Bucket configured with index_document: {index_page} and error_document: {error_page}.")
        return index_page, error_page

    def status_message(self) -> str:
        """List written and deleted file counts."""
        uploaded = self.stats.files_uploaded
        deleted = self.stats.files_deleted
        return (
            f"{Colors.GREEN}Success:{Colors.NC} {uploaded} {pluralize('file', uploaded)} uploaded, "
            f"{deleted} {pluralize('file', deleted)} deleted."
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='buckethop',
        description=f'BucketHop - static site deployment to object storage (v{__version__})',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', help=f'Configuration file path (default: {DEFAULT_CONFIG_FILE})')
    parser.add_argument('--debug', action='store_true', help='Log storage requests for debugging')

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--bucket', dest='bucket_name', help='Bucket (or storage zone) name')
    common.add_argument('--site-dir', help=f'Local site directory (default: {DEFAULT_SITE_DIR})')
    common.add_argument('--remote-path', help='Path on the bucket where files are copied')
    common.add_argument('--region', help=f'Bucket region (default: {DEFAULT_REGION})')
    common.add_argument('--storage', choices=STORAGE_TYPES, help='Storage backend (default: s3)')
    common.add_argument('--endpoint-url', help='Custom storage endpoint URL')
    common.add_argument('--delete', action=argparse.BooleanOptionalAction, default=None,
                        help='Remove remote files which do not match local files')
    common.add_argument('--verbose', dest='verbose', action='store_const', const=True, default=None,
                        help='Print out all file operations')
    common.add_argument('--quiet', dest='verbose', action='store_const', const=False,
                        help='Print one progress character per file')

    subparsers = parser.add_subparsers(dest='command', required=True, metavar='command')

    push = subparsers.add_parser('push', parents=[common], help='Sync the local site to the bucket')
    push.set_defaults(action='push')

    pull = subparsers.add_parser('pull', parents=[common], help='Download the bucket into a local directory')
    pull.add_argument('--dir', help='Directory to write pulled files to')
    pull.set_defaults(action='pull')

    add_bucket = subparsers.add_parser('add_bucket', aliases=['add-bucket'], parents=[common],
                                       help='Create the bucket and configure website hosting')
    add_bucket.set_defaults(action='add_bucket')

    configure = subparsers.add_parser('configure', parents=[common], help='Configure website hosting on the bucket')
    configure.add_argument('--index-page', help='Key served for the site root')
    configure.add_argument('--error-page', help='Key served for error responses')
    configure.set_defaults(action='configure_website')

    init = subparsers.add_parser('init', parents=[common], help='Print a default configuration file')
    init.add_argument('--output', help='Write the configuration to this file instead of stdout')
    init.add_argument('--force', action='store_true', help='Overwrite an existing configuration file')
    init.set_defaults(action='init')

    return parser


def options_from_args(args: argparse.Namespace) -> Options:
    return Options(**{f.name: getattr(args, f.name, None) for f in fields(Options)})


def write_default_config(args: argparse.Namespace):
    content = default_config(options_from_args(args))
    if not args.output:
        print(content, end='')
        return

    output = Path(args.output)
    if output.exists() and not args.force:
        raise ConfigError(f"{output} already exists. Use --force to overwrite it.")
    output.write_text(content)
    print(f"{Colors.GREEN}Wrote default configuration to {output}{Colors.NC}")


def print_partial_counts(sync: Optional[SiteSync]):
    if sync is None:
        return
    stats = sync.stats
    print(f"{Colors.YELLOW}Completed before the failure: {stats.files_uploaded} uploaded, "
          f"{stats.files_deleted} deleted, {stats.files_pulled} pulled.{Colors.NC}")


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format='%(asctime)s %(name)s %(levelname)s: %(message)s',
    )

    sync = None
    try:
        if args.action == 'init':
            write_default_config(args)
            return

        # Load config from file, then override with command line arguments
        file_options = Options.load_from_file(args.config or DEFAULT_CONFIG_FILE, required=args.config is not None)
        settings = resolve_settings(file_options.merge(options_from_args(args)))

        sync = SiteSync(settings)
        getattr(sync, args.action)()
    except FatalConfigError as e:
        print(f"{Colors.RED}Configuration Error: {e}{Colors.NC}")
        sys.exit(1)
    except StorageError as e:
        print(f"\n{Colors.RED}Storage Error: {e}{Colors.NC}")
        print_partial_counts(sync)
        sys.exit(1)
    except OSError as e:
        print(f"\n{Colors.RED}File Error: {e}{Colors.NC}")
        print_partial_counts(sync)
        sys.exit(1)
    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}Sync cancelled by user.{Colors.NC}")
        sys.exit(1)


if __name__ == "__main__":
    main()
