"""Object storage for assembled game packages."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlparse, urlunparse

from google.api_core.exceptions import NotFound
from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from gameforge.config import Settings

ZIP_CONTENT_TYPE = "application/zip"


@dataclass(frozen=True)
class StoredPackage:
  locator: str
  download_url: str
  size: int


def package_object_name(job_id: str) -> str:
  return f"packages/{job_id}.zip"


class PackageStorage(Protocol):
  async def ensure_bucket(self) -> None:
    """Prepare the backing bucket when running locally."""

  async def store_package(self, data: bytes, job_id: str, user_id: str) -> StoredPackage:
    """Persist a zip package and return where it lives."""

  async def load_package(self, locator: str) -> bytes | None:
    """Return package bytes, or None when the object is missing."""


class GcsPackageStorage(PackageStorage):
  """Thin wrapper over GCS and emulator access for package upload/download."""

  def __init__(self, settings: Settings) -> None:
    self._bucket_name = settings.artifact_bucket
    self._storage_host = settings.gcs_storage_host
    self._base_url = settings.base_url
    # The SDK reads the emulator endpoint from the environment.
    if self._storage_host:
      emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["STORAGE_EMULATOR_HOST"] = emulator_endpoint
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": emulator_endpoint})
    else:
      self._client = storage.Client(project=settings.gcp_project_id)

  async def ensure_bucket(self) -> None:
    """Create the bucket when missing, only against the emulator."""
    if not self._storage_host:
      return
    bucket = self._client.bucket(self._bucket_name)

    def _create_if_missing() -> None:
      if not bucket.exists(client=self._client):
        self._client.create_bucket(bucket)

    await run_in_threadpool(_create_if_missing)

  async def store_package(self, data: bytes, job_id: str, user_id: str) -> StoredPackage:
    object_name = package_object_name(job_id)
    blob = self._client.bucket(self._bucket_name).blob(object_name)
    blob.metadata = {"userId": user_id, "jobId": job_id}
    blob.cache_control = "private, max-age=3600"
    await run_in_threadpool(blob.upload_from_string, data, ZIP_CONTENT_TYPE)
    return StoredPackage(locator=f"gs://{self._bucket_name}/{object_name}", download_url=f"{self._base_url}/api/download/{job_id}", size=len(data))

  async def load_package(self, locator: str) -> bytes | None:
    object_name = _object_name_from_locator(locator, self._bucket_name)
    blob = self._client.bucket(self._bucket_name).blob(object_name)
    try:
      return await run_in_threadpool(blob.download_as_bytes)
    except NotFound:
      return None


def _object_name_from_locator(locator: str, bucket_name: str) -> str:
  prefix = f"gs://{bucket_name}/"
  if locator.startswith(prefix):
    return locator[len(prefix) :]
  return locator


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Normalize emulator endpoint so the SDK receives scheme+host+port only."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
