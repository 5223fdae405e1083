"""Install-script download and variable substitution.

Install scripts are assets downloaded into a fresh volume directory while an
instance is provisioned. ``{{key}}`` placeholders are resolved at two points:
in the download URI before fetching, and in the downloaded text files
afterwards. Both steps are idempotent and safe to retry.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from airdaemon.config.defaults import BINARY_ARCHIVE_EXTENSIONS
from airdaemon.lib.errors import PartialFailureError, ValidationError
from airdaemon.lib.logging_config import get_logger
from airdaemon.lib.paths import resolve_within
from airdaemon.models.deployment import InstallScript

logger = get_logger(__name__)

DEFAULT_DOWNLOAD_TIMEOUT = 30.0
DEFAULT_CONCURRENCY = 8


@dataclass(frozen=True)
class ScriptResult:
    """Outcome of a single install-script download.

    Attributes:
        path: Destination path as given by the descriptor
        success: Whether the file was downloaded and moved into place
        error: Failure message when ``success`` is False
    """

    path: str
    success: bool
    error: str | None = None


def normalize_variables(value: Mapping[str, Any] | str | None) -> dict[str, str]:
    """Normalize a variable mapping given as a dict or a JSON string.

    Args:
        value: A mapping, a JSON-encoded object, or None.

    Returns:
        A ``str -> str`` mapping. ``None`` values become empty strings.

    Raises:
        ValidationError: If a string is not a JSON object.
    """
    if value is None or value == "":
        return {}
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"variables is not valid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise ValidationError("variables must be a JSON object")
        value = parsed
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


def render_tokens(text: str, variables: Mapping[str, str]) -> tuple[str, int]:
    """Replace every ``{{key}}`` occurrence for every key in *variables*.

    Unknown placeholders are left untouched.

    Returns:
        The rendered text and the number of replacements made.
    """
    replacements = 0
    for key, value in variables.items():
        token = "{{" + key + "}}"
        occurrences = text.count(token)
        if occurrences:
            text = text.replace(token, value)
            replacements += occurrences
    return text, replacements


async def download_file(
    client: httpx.AsyncClient, url: str, destination: Path
) -> None:
    """Stream *url* into *destination* through a temporary file.

    The temporary file ``<destination>.tmp`` is renamed into place only after
    the whole body was written, and removed on any failure.

    Raises:
        httpx.HTTPError: On transport errors.
        OSError: On filesystem errors.
        RuntimeError: On a non-200 response.
    """
    temp_path = destination.with_name(destination.name + ".tmp")
    await asyncio.to_thread(destination.parent.mkdir, parents=True, exist_ok=True)
    try:
        async with client.stream("GET", url) as response:
            if response.status_code != 200:
                raise RuntimeError(
                    f"Failed to download {destination.name}: "
                    f"HTTP status code {response.status_code}"
                )
            handle = await asyncio.to_thread(temp_path.open, "wb")
            try:
                async for chunk in response.aiter_bytes():
                    await asyncio.to_thread(handle.write, chunk)
            finally:
                await asyncio.to_thread(handle.close)
        await asyncio.to_thread(temp_path.replace, destination)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


async def fetch_install_scripts(
    scripts: Sequence[InstallScript],
    target_dir: Path,
    variables: Mapping[str, str] | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[ScriptResult]:
    """Download every install script into *target_dir*.

    URIs are rendered with *variables* first. Downloads run concurrently,
    bounded by *concurrency*, and all of them settle before the outcome is
    judged; one failure never cancels the others.

    Args:
        scripts: Script descriptors.
        target_dir: Volume directory receiving the files.
        variables: Values for ``{{key}}`` placeholders in the URIs.
        client: HTTP client to use. A client with *timeout* is created and
            closed when omitted.
        timeout: Per-request timeout in seconds for the internal client.
        concurrency: Maximum number of simultaneous downloads.

    Returns:
        One result per script, in input order.

    Raises:
        PartialFailureError: If one or more downloads failed.
    """
    variables = variables or {}
    target_dir.mkdir(parents=True, exist_ok=True)
    semaphore = asyncio.Semaphore(concurrency)

    async def fetch_one(
        http: httpx.AsyncClient, script: InstallScript
    ) -> ScriptResult:
        async with semaphore:
            try:
                url, _ = render_tokens(script.uri, variables)
                destination = resolve_within(target_dir, script.path)
                await download_file(http, url, destination)
            except Exception as exc:
                logger.error(f"Failed to download {script.path}: {exc}")
                return ScriptResult(
                    path=script.path, success=False, error=str(exc)
                )
            logger.info(f"Successfully downloaded {script.path}")
            return ScriptResult(path=script.path, success=True)

    if client is None:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as http:
            results = await asyncio.gather(*(fetch_one(http, s) for s in scripts))
    else:
        results = await asyncio.gather(*(fetch_one(client, s) for s in scripts))

    failed = [r.path for r in results if not r.success]
    if failed:
        raise PartialFailureError(
            f"Failed to download {len(failed)} scripts",
            failed=failed,
            total=len(results),
        )
    return list(results)


def _substitute_file(path: Path, variables: Mapping[str, str]) -> bool:
    # Bytes in and out so line endings survive the rewrite
    content = path.read_bytes().decode("utf-8")
    rendered, replacements = render_tokens(content, variables)
    if not replacements:
        return False
    path.write_bytes(rendered.encode("utf-8"))
    return True


async def replace_variables(
    target_dir: Path, variables: Mapping[str, str]
) -> list[str]:
    """Substitute placeholders in the immediate text files of *target_dir*.

    Subdirectories are not visited. Files with a packaged-archive extension
    are skipped. A file is rewritten only when at least one placeholder was
    replaced, so untouched files keep their modification time. Errors on
    one file are logged and do not stop the others.

    Args:
        target_dir: Volume directory holding the downloaded files.
        variables: Placeholder values.

    Returns:
        Names of the files that were rewritten.
    """
    entries = await asyncio.to_thread(lambda: sorted(target_dir.iterdir()))

    async def process(path: Path) -> str | None:
        if not path.is_file() or path.suffix.lower() in BINARY_ARCHIVE_EXTENSIONS:
            return None
        try:
            changed = await asyncio.to_thread(_substitute_file, path, variables)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error(f"Error processing file {path.name}: {exc}")
            return None
        if changed:
            logger.info(f"Variables replaced in {path.name}")
            return path.name
        return None

    results = await asyncio.gather(*(process(p) for p in entries))
    return [name for name in results if name is not None]
