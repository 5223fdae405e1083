"""Tests for install-script download and substitution in airdaemon.deploy.install."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from airdaemon.deploy.install import (
    download_file,
    fetch_install_scripts,
    normalize_variables,
    render_tokens,
    replace_variables,
)
from airdaemon.lib.errors import PartialFailureError, ValidationError
from airdaemon.models.deployment import InstallScript


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _script(uri: str, path: str) -> InstallScript:
    return InstallScript(Uri=uri, Path=path)


class TestRenderTokens:
    """Tests for placeholder rendering."""

    def test_replaces_every_occurrence(self) -> None:
        text, count = render_tokens("{{A}}-{{B}}-{{A}}", {"A": "1", "B": "2"})
        assert text == "1-2-1"
        assert count == 3

    def test_unknown_placeholders_are_kept(self) -> None:
        text, count = render_tokens("port={{PORT}} name={{NAME}}", {"PORT": "25565"})
        assert text == "port=25565 name={{NAME}}"
        assert count == 1

    def test_no_variables_no_change(self) -> None:
        assert render_tokens("{{A}}", {}) == ("{{A}}", 0)


class TestNormalizeVariables:
    """Tests for variable normalization."""

    def test_dict_values_are_stringified(self) -> None:
        assert normalize_variables({"PORT": 25565, "EULA": True, "X": None}) == {
            "PORT": "25565",
            "EULA": "True",
            "X": "",
        }

    def test_json_string_is_parsed(self) -> None:
        assert normalize_variables('{"PORT": "25565"}') == {"PORT": "25565"}

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_values(self, value: str | None) -> None:
        assert normalize_variables(value) == {}

    @pytest.mark.parametrize("value", ["{broken", "[1, 2]", '"text"'])
    def test_invalid_json_is_rejected(self, value: str) -> None:
        with pytest.raises(ValidationError):
            normalize_variables(value)


class TestFetchInstallScripts:
    """Tests for concurrent install-script downloads."""

    @pytest.mark.asyncio
    async def test_downloads_into_target_dir(self, tmp_path: Path) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=b"echo {{PORT}}\n")

        async with _client(handler) as client:
            results = await fetch_install_scripts(
                [
                    _script("https://cdn.test/{{VERSION}}/start.sh", "start.sh"),
                    _script("https://cdn.test/config.yml", "config/config.yml"),
                ],
                tmp_path,
                {"VERSION": "1.20.4"},
                client=client,
            )

        assert [r.success for r in results] == [True, True]
        assert "https://cdn.test/1.20.4/start.sh" in requested
        assert (tmp_path / "start.sh").read_bytes() == b"echo {{PORT}}\n"
        assert (tmp_path / "config" / "config.yml").exists()
        assert not list(tmp_path.rglob("*.tmp"))

    @pytest.mark.asyncio
    async def test_one_failure_does_not_cancel_siblings(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/missing.sh":
                return httpx.Response(404)
            return httpx.Response(200, content=b"ok")

        async with _client(handler) as client:
            with pytest.raises(PartialFailureError) as exc_info:
                await fetch_install_scripts(
                    [
                        _script("https://cdn.test/missing.sh", "missing.sh"),
                        _script("https://cdn.test/a.sh", "a.sh"),
                        _script("https://cdn.test/b.sh", "b.sh"),
                    ],
                    tmp_path,
                    client=client,
                )

        assert exc_info.value.failed == ["missing.sh"]
        assert exc_info.value.total == 3
        assert str(exc_info.value) == "Failed to download 1 scripts"
        assert (tmp_path / "a.sh").read_bytes() == b"ok"
        assert (tmp_path / "b.sh").read_bytes() == b"ok"
        assert not (tmp_path / "missing.sh").exists()
        assert not (tmp_path / "missing.sh.tmp").exists()

    @pytest.mark.asyncio
    async def test_transport_error_leaves_no_partial_file(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(PartialFailureError):
                await fetch_install_scripts(
                    [_script("https://cdn.test/a.sh", "a.sh")], tmp_path, client=client
                )

        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_escaping_destination_is_a_failure(self, tmp_path: Path) -> None:
        target = tmp_path / "volume"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"payload")

        async with _client(handler) as client:
            with pytest.raises(PartialFailureError) as exc_info:
                await fetch_install_scripts(
                    [_script("https://cdn.test/a.sh", "../escaped.sh")],
                    target,
                    client=client,
                )

        assert exc_info.value.failed == ["../escaped.sh"]
        assert not (tmp_path / "escaped.sh").exists()

    @pytest.mark.asyncio
    async def test_chunks_are_written_off_the_event_loop(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        offloaded: list[str] = []
        original = asyncio.to_thread

        async def recording_to_thread(func, /, *args, **kwargs):
            offloaded.append(getattr(func, "__name__", repr(func)))
            return await original(func, *args, **kwargs)

        monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"x" * 4096)

        destination = tmp_path / "nested" / "server.jar"
        async with _client(handler) as client:
            await download_file(client, "https://cdn.test/server.jar", destination)

        assert destination.read_bytes() == b"x" * 4096
        assert "write" in offloaded
        assert "close" in offloaded


class TestReplaceVariables:
    """Tests for placeholder substitution in downloaded files."""

    @pytest.mark.asyncio
    async def test_rewrites_matching_files_only(self, tmp_path: Path) -> None:
        props = tmp_path / "server.properties"
        props.write_text("server-port={{PORT}}\n")
        readme = tmp_path / "README.txt"
        readme.write_text("nothing to see\n")
        os.utime(readme, (1_000_000, 1_000_000))

        changed = await replace_variables(tmp_path, {"PORT": "25565"})

        assert changed == ["server.properties"]
        assert props.read_text() == "server-port=25565\n"
        assert readme.stat().st_mtime == 1_000_000

    @pytest.mark.asyncio
    async def test_skips_archives_and_subdirectories(self, tmp_path: Path) -> None:
        jar = tmp_path / "server.jar"
        jar.write_bytes(b"{{PORT}}")
        nested = tmp_path / "config"
        nested.mkdir()
        (nested / "inner.cfg").write_text("{{PORT}}")

        changed = await replace_variables(tmp_path, {"PORT": "25565"})

        assert changed == []
        assert jar.read_bytes() == b"{{PORT}}"
        assert (nested / "inner.cfg").read_text() == "{{PORT}}"

    @pytest.mark.asyncio
    async def test_undecodable_file_does_not_stop_others(self, tmp_path: Path) -> None:
        (tmp_path / "binary.dat").write_bytes(b"\xff\xfe{{PORT}}\x80")
        (tmp_path / "start.sh").write_text("java -port {{PORT}}\r\n")

        changed = await replace_variables(tmp_path, {"PORT": "25565"})

        assert changed == ["start.sh"]
        assert (tmp_path / "start.sh").read_bytes() == b"java -port 25565\r\n"
