"""Unit tests for fetching and loading configuration documents."""

import json
from pathlib import Path

import httpx
import pytest

from scaffolder.configurations.fetcher import (
    ConfigurationCache,
    ConfigurationFetcher,
    display_name,
    is_url,
    local_copy,
    resolve_location,
)
from scaffolder.configurations.loader import ConfigurationLoader, parse_text
from scaffolder.configurations.schema import validate_document
from scaffolder.core.errors import (
    ConfigFetchError,
    ConfigParseError,
    ConfigurationNotFoundError,
    InvalidConfigError,
    SchemaValidationError,
)

REMOTE_BASE = "https://example.com/templates/base.json"


def _remote(documents: dict[str, dict]) -> ConfigurationFetcher:
    """Fetcher whose transport serves ``documents`` by URL and 404s otherwise."""

    def handler(request: httpx.Request) -> httpx.Response:
        document = documents.get(str(request.url))
        if document is None:
            return httpx.Response(404)
        return httpx.Response(200, text=json.dumps(document))

    return ConfigurationFetcher(transport=httpx.MockTransport(handler))


class TestResolveLocation:
    """Tests for location identity."""

    def test_url_detection(self) -> None:
        """Test only http(s) URLs count as remote."""
        assert is_url("https://example.com/a.json")
        assert is_url("http://example.com/a.json")
        assert not is_url("file:///a.json")
        assert not is_url("a.json")
        assert not is_url(None)

    def test_relative_to_cwd(self, tmp_path: Path) -> None:
        """Test bare references resolve against the working directory."""
        assert resolve_location("a.json", cwd=tmp_path) == str((tmp_path / "a.json").resolve())

    def test_relative_to_base_document(self, tmp_path: Path) -> None:
        """Test references resolve against the referring document's directory."""
        base = str(tmp_path / "sub" / "child.json")
        assert resolve_location("../base.json", base) == str((tmp_path / "base.json").resolve())

    def test_relative_to_remote_base(self) -> None:
        """Test references from a remote document become URLs."""
        assert resolve_location("common.json", REMOTE_BASE) == (
            "https://example.com/templates/common.json"
        )

    def test_display_name(self, tmp_path: Path) -> None:
        """Test diagnostic labels are shortened relative to cwd."""
        assert display_name(str(tmp_path / "a.json"), tmp_path) == "a.json"
        assert display_name(REMOTE_BASE) == REMOTE_BASE
        assert display_name(None) == "current configuration"


class TestConfigurationFetcher:
    """Tests for ConfigurationFetcher."""

    @pytest.mark.asyncio
    async def test_remote_success(self) -> None:
        """Test a remote document is fetched through httpx."""
        fetcher = _remote({REMOTE_BASE: {"name": "base"}})
        assert json.loads(await fetcher.fetch_text(REMOTE_BASE)) == {"name": "base"}

    @pytest.mark.asyncio
    async def test_remote_status_error(self) -> None:
        """Test a non-success status raises ConfigFetchError."""
        fetcher = _remote({})
        with pytest.raises(ConfigFetchError) as exc_info:
            await fetcher.fetch_text(REMOTE_BASE)
        assert "404" in exc_info.value.message
        assert exc_info.value.url == REMOTE_BASE

    @pytest.mark.asyncio
    async def test_remote_transport_error(self) -> None:
        """Test transport failures raise ConfigFetchError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        fetcher = ConfigurationFetcher(transport=httpx.MockTransport(handler))
        with pytest.raises(ConfigFetchError):
            await fetcher.fetch_text(REMOTE_BASE)

    @pytest.mark.asyncio
    async def test_missing_local_file(self, tmp_path: Path) -> None:
        """Test a missing local file raises ConfigurationNotFoundError."""
        with pytest.raises(ConfigurationNotFoundError) as exc_info:
            await ConfigurationFetcher().fetch_text(str(tmp_path / "nope.json"))
        assert "Configuration file not found" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_local_copy_of_remote_file_is_removed(self) -> None:
        """Test downloaded copies live only inside the context."""
        url = "https://example.com/scripts/run.sh"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="echo hi\n")

        fetcher = ConfigurationFetcher(transport=httpx.MockTransport(handler))
        async with local_copy(fetcher, url) as path:
            assert path.read_text(encoding="utf-8") == "echo hi\n"
            assert path.suffix == ".sh"
        assert not path.exists()


class TestConfigurationCache:
    """Tests for the per-run cache."""

    def test_operations(self) -> None:
        """Test get, set, membership and clear."""
        cache = ConfigurationCache()
        assert cache.get("a") is None
        cache.set("a", 1)
        assert "a" in cache
        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0


class TestParseText:
    """Tests for JSON/YAML parsing."""

    def test_yaml_by_extension(self) -> None:
        """Test .yaml and .yml documents are parsed as YAML."""
        assert parse_text("name: base\n", "cfg.yaml") == {"name": "base"}
        assert parse_text("name: base\n", "https://example.com/cfg.yml") == {"name": "base"}

    def test_malformed(self) -> None:
        """Test malformed text raises ConfigParseError."""
        with pytest.raises(ConfigParseError):
            parse_text("{", "cfg.json")


class TestConfigurationLoader:
    """Tests for ConfigurationLoader."""

    @pytest.mark.asyncio
    async def test_load_annotates_provenance(self, tmp_path: Path, write_config) -> None:
        """Test the document and its entities carry their source."""
        path = write_config(
            "scaffold.json",
            {
                "name": "my-template",
                "tasks": [{"id": "t", "type": "write", "config": {}}],
                "variables": [{"id": "v", "value": 1}],
            },
        )
        document = await ConfigurationLoader(cwd=tmp_path).load("scaffold.json")

        assert document.name == "my-template"
        assert document.source_url == str(path.resolve())
        assert document.tasks[0].source_url == str(path.resolve())
        assert document.variables[0].source_url == str(path.resolve())

    @pytest.mark.asyncio
    async def test_load_yaml(self, tmp_path: Path) -> None:
        """Test YAML documents load like JSON ones."""
        (tmp_path / "scaffold.yaml").write_text(
            "name: yaml-template\ntasks:\n  - id: t\n    type: write\n", encoding="utf-8"
        )
        document = await ConfigurationLoader(cwd=tmp_path).load("scaffold.yaml")
        assert [t.id for t in document.tasks] == ["t"]

    @pytest.mark.asyncio
    async def test_load_non_utf8_is_parse_error(self, tmp_path: Path) -> None:
        """Test undecodable bytes surface as a parse error naming the file."""
        (tmp_path / "scaffold.json").write_bytes(b'{"name": "bad\xff"}')
        with pytest.raises(ConfigParseError, match="scaffold.json"):
            await ConfigurationLoader(cwd=tmp_path).load("scaffold.json")

    @pytest.mark.asyncio
    async def test_load_is_cached(self, tmp_path: Path, write_config) -> None:
        """Test a document is read once per loader."""
        path = write_config("scaffold.json", {"name": "cached"})
        loader = ConfigurationLoader(cwd=tmp_path)
        first = await loader.load("scaffold.json")
        path.unlink()
        second = await loader.load(str(path))
        assert first is second

    @pytest.mark.asyncio
    async def test_load_remote(self, tmp_path: Path) -> None:
        """Test remote documents keep their URL as identity."""
        loader = ConfigurationLoader(fetcher=_remote({REMOTE_BASE: {"name": "base"}}), cwd=tmp_path)
        document = await loader.load(REMOTE_BASE)
        assert document.source_url == REMOTE_BASE

    @pytest.mark.asyncio
    async def test_missing_name(self, tmp_path: Path, write_config) -> None:
        """Test a document without a name is rejected."""
        write_config("scaffold.json", {"tasks": []})
        with pytest.raises(InvalidConfigError) as exc_info:
            await ConfigurationLoader(cwd=tmp_path).load("scaffold.json")
        assert "missing required field 'name'" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_invalid_name(self, tmp_path: Path, write_config) -> None:
        """Test names must be lowercase hyphen-separated words."""
        write_config("scaffold.json", {"name": "My_Template"})
        with pytest.raises(InvalidConfigError):
            await ConfigurationLoader(cwd=tmp_path).load("scaffold.json")

    @pytest.mark.asyncio
    async def test_tasks_not_list(self, tmp_path: Path, write_config) -> None:
        """Test a non-list tasks field is rejected before schema checks."""
        write_config("scaffold.json", {"name": "bad", "tasks": {"id": "t"}})
        with pytest.raises(InvalidConfigError) as exc_info:
            await ConfigurationLoader(cwd=tmp_path).load("scaffold.json")
        assert "'tasks' must be a list" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_schema_errors(self, tmp_path: Path, write_config) -> None:
        """Test schema violations are reported with their paths."""
        write_config("scaffold.json", {"name": "bad", "tasks": [{"id": "t"}]})
        with pytest.raises(SchemaValidationError) as exc_info:
            await ConfigurationLoader(cwd=tmp_path).load("scaffold.json")
        assert any(d.startswith("$.tasks[0]") for d in exc_info.value.diagnostics)


class TestValidateDocument:
    """Tests for the document schema."""

    def test_valid(self) -> None:
        """Test a well-formed document has no diagnostics."""
        document = {
            "name": "ok",
            "extends": ["a.json"],
            "enabled": {"type": "exec", "value": "true"},
            "prompts": [{"id": "p", "type": "confirm"}],
        }
        assert validate_document(document) == []

    def test_bad_prompt_type(self) -> None:
        """Test an unknown prompt type is reported."""
        diagnostics = validate_document({"name": "x", "prompts": [{"id": "p", "type": "slider"}]})
        assert diagnostics and diagnostics[0].startswith("$.prompts[0].type")
