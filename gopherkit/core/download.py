"""
Archive downloads with resume support and checksum verification.

This module provides:
- HTTP/HTTPS streaming downloads with TLS verification
- Skip when the destination already exists with the expected SHA-256
- Resume of interrupted downloads from ``<file>.part`` (Range requests)
- Checksum verification before the file is moved into place
- Progress reporting through a callback

There is no retry loop. Network failures surface as NetworkUnavailableError
or NetworkTimeoutError (both ``retryable``) and the caller decides whether
to try again.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests
from requests.exceptions import ConnectionError, RequestException, Timeout

from gopherkit.core.exceptions import (
    ArtifactNotFoundError,
    ChecksumMismatchError,
    NetworkTimeoutError,
    NetworkUnavailableError,
)
from gopherkit.core.verification import StreamingHasher, verify_file_hash

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: int
    percentage: float
    speed_bps: float  # bytes per second
    eta_seconds: float  # estimated time remaining

    def __str__(self) -> str:
        return format_progress(self)


def partial_path(destination: Path) -> Path:
    """Where an in-flight download is staged."""
    return destination.with_name(destination.name + ".part")


def download_file(
    url: str,
    destination: Path,
    expected_sha256: Optional[str] = None,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    resume: bool = True,
    timeout: float = 30,
    session: Optional[requests.Session] = None,
) -> Path:
    """
    Download file from URL to destination with checksum verification.

    Args:
        url: URL to download from
        destination: Local path to save file
        expected_sha256: Expected SHA-256 hash (verified before the rename)
        progress_callback: Optional callback for progress updates
        resume: Whether to resume a leftover ``.part`` file
        timeout: Connect/read timeout in seconds
        session: Optional requests session

    Returns:
        Path to downloaded file

    Raises:
        ChecksumMismatchError: If the bytes don't match expected_sha256
        ArtifactNotFoundError: If the server answers 404/410
        NetworkUnavailableError: If the server can't be reached
        NetworkTimeoutError: If the server stops responding

    Example:
        >>> download_file(info.url, downloads_dir / info.filename,
        ...               expected_sha256=info.content_hash)
    """
    if not url:
        raise ValueError("URL cannot be empty")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    if destination.exists() and expected_sha256:
        logger.info(f"File exists, verifying checksum: {destination}")
        if verify_file_hash(destination, expected_sha256):
            logger.info("Checksum verified, skipping download")
            return destination
        logger.warning(f"Cached file {destination.name} has wrong checksum, re-downloading")
        destination.unlink()

    part = partial_path(destination)
    resume_from = part.stat().st_size if resume and part.exists() else 0
    if not resume:
        part.unlink(missing_ok=True)
    if resume_from:
        logger.info(f"Resuming download from byte {resume_from}")

    session = session or requests.Session()
    try:
        _stream_to_part(
            session, url, part, resume_from, expected_sha256, progress_callback, timeout
        )
    except Timeout as e:
        raise NetworkTimeoutError(url, timeout) from e
    except ConnectionError as e:
        raise NetworkUnavailableError(url, str(e)) from e
    except RequestException as e:
        raise NetworkUnavailableError(url, str(e)) from e

    part.replace(destination)
    logger.info(f"Download complete: {destination}")
    return destination


def _open_response(session, url, resume_from, timeout):
    headers = {"Range": f"bytes={resume_from}-"} if resume_from else {}
    response = session.get(
        url, headers=headers, stream=True, timeout=timeout, allow_redirects=True
    )

    if response.status_code in (404, 410):
        response.close()
        raise ArtifactNotFoundError(url)
    if response.status_code >= 400 and response.status_code != 416:
        response.close()
        raise NetworkUnavailableError(url, f"HTTP {response.status_code}")
    return response


def _stream_to_part(
    session: requests.Session,
    url: str,
    part: Path,
    resume_from: int,
    expected_sha256: Optional[str],
    progress_callback: Optional[Callable[[DownloadProgress], None]],
    timeout: float,
) -> None:
    logger.info(f"Downloading from {url}")
    response = _open_response(session, url, resume_from, timeout)

    if response.status_code == 416:
        # Partial file is not a prefix of what the server has
        response.close()
        logger.debug(f"Server rejected range for {part.name}, starting over")
        part.unlink(missing_ok=True)
        resume_from = 0
        response = _open_response(session, url, 0, timeout)

    if resume_from and response.status_code != 206:
        logger.debug("Server ignored Range header, restarting download")
        resume_from = 0

    content_length = response.headers.get("content-length")
    total_size = int(content_length) + resume_from if content_length else 0

    hasher = StreamingHasher() if expected_sha256 else None
    if resume_from and hasher:
        with open(part, "rb") as f:
            while chunk := f.read(CHUNK_SIZE):
                hasher.update(chunk)

    downloaded = resume_from
    start_time = time.monotonic()
    last_progress_time = start_time

    with response, open(part, "ab" if resume_from else "wb") as f:
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if not chunk:
                continue
            f.write(chunk)
            downloaded += len(chunk)
            if hasher:
                hasher.update(chunk)

            now = time.monotonic()
            if progress_callback and (
                now - last_progress_time >= 0.5 or downloaded == total_size
            ):
                progress_callback(
                    _progress(downloaded, total_size, resume_from, now - start_time)
                )
                last_progress_time = now

    if hasher and not hasher.matches(expected_sha256):
        actual_hash = hasher.hexdigest()
        part.unlink(missing_ok=True)
        raise ChecksumMismatchError(part.with_suffix(""), expected_sha256, actual_hash)

    if hasher:
        logger.info("Checksum verified successfully")


def _progress(downloaded: int, total: int, resumed: int, elapsed: float):
    speed = (downloaded - resumed) / elapsed if elapsed > 0 else 0
    remaining = total - downloaded if total > 0 else 0
    return DownloadProgress(
        bytes_downloaded=downloaded,
        total_bytes=total if total > 0 else downloaded,
        percentage=(downloaded / total * 100) if total > 0 else 0,
        speed_bps=speed,
        eta_seconds=remaining / speed if speed > 0 else 0,
    )


def format_progress(progress: DownloadProgress) -> str:
    """
    Format progress for display.

    Example:
        >>> progress = DownloadProgress(52428800, 104857600, 50.0, 1048576, 50)
        >>> print(format_progress(progress))
        50.0/100.0 MB (50.0%) at 1.0 MB/s ETA: 50s
    """
    mb_downloaded = progress.bytes_downloaded / 1024 / 1024
    mb_total = progress.total_bytes / 1024 / 1024
    speed_mbps = progress.speed_bps / 1024 / 1024

    if progress.total_bytes > 0 and progress.percentage > 0:
        return (
            f"{mb_downloaded:.1f}/{mb_total:.1f} MB ({progress.percentage:.1f}%) "
            f"at {speed_mbps:.1f} MB/s ETA: {progress.eta_seconds:.0f}s"
        )
    return f"{mb_downloaded:.1f} MB at {speed_mbps:.1f} MB/s"
