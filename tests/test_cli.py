import json
import logging
import shutil

import pytest

import main as cli
from tests.conftest import FIXTURES

STORE = str(FIXTURES / "store_controllers.cs")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("IGNORE_DIRS", "MAX_FILE_SIZE", "CACHE_SIZE", "LOG_LEVEL", "LOG_FILE",
                 "ENVIRONMENTS", "ENV"):
        monkeypatch.delenv(f"ENDPOINT_LENS_{name}", raising=False)


def run(tmp_path, *args):
    out = tmp_path / "out.json"
    code = cli.main([*args, "-q", "-o", str(out)])
    data = json.loads(out.read_text()) if out.exists() else None
    return code, data


class TestMain:
    def test_single_file(self, tmp_path):
        code, data = run(tmp_path, STORE)
        assert code == 0
        assert data["version"] == cli.__version__
        assert data["summary"]["endpoints"] == 13
        assert data["summary"]["controllers"] == 2
        first = data["endpoints"][0]
        assert first["file"] == "store_controllers.cs"
        assert (first["method"], first["route"]) == ("GET", "/api/users/{id}")
        assert "request" not in first

    def test_method_filter(self, tmp_path):
        code, data = run(tmp_path, STORE, "--method", "post")
        assert code == 0
        assert {e["method"] for e in data["endpoints"]} == {"POST"}
        assert len(data["endpoints"]) == 4

    def test_generate_with_default_environment(self, tmp_path):
        code, data = run(tmp_path, STORE, "--generate")
        assert code == 0
        request = data["endpoints"][0]["request"]
        assert request["url"] == "http://localhost:5000/api/users/1"
        assert request["path_params"] == {"id": "1"}

    def test_generate_with_named_environment(self, tmp_path):
        environments = tmp_path / "environments.yaml"
        environments.write_text(
            "environments:\n"
            "  - name: Staging\n"
            "    base_url: https://staging.example.com\n"
            "    base_path: /v2\n",
            encoding="utf-8",
        )
        code, data = run(tmp_path, STORE, "--generate", "--environments", str(environments),
                         "--env", "staging")
        assert code == 0
        assert data["endpoints"][0]["request"]["url"] == "https://staging.example.com/v2/api/users/1"

    def test_unknown_environment(self, tmp_path):
        code, data = run(tmp_path, STORE, "--generate", "--env", "Production")
        assert code == 1
        assert data is None

    def test_directory_skips_build_output(self, tmp_path):
        src = tmp_path / "src"
        (src / "bin").mkdir(parents=True)
        shutil.copy(FIXTURES / "store_controllers.cs", src / "store_controllers.cs")
        shutil.copy(FIXTURES / "legacy_controllers.cs", src / "bin" / "legacy_controllers.cs")
        (src / "notes.txt").write_text("not C#", encoding="utf-8")

        code, data = run(tmp_path, str(src))
        assert code == 0
        assert [f["path"] for f in data["files"]] == ["store_controllers.cs"]
        assert data["summary"]["files_skipped"] == 1

    def test_generate_resolves_models_from_sibling_files(self, tmp_path):
        src = tmp_path / "src"
        (src / "Controllers").mkdir(parents=True)
        (src / "Models").mkdir()
        (src / "Controllers" / "OrdersController.cs").write_text(
            "[ApiController]\n"
            "[Route(\"api/orders\")]\n"
            "public class OrdersController : ControllerBase\n"
            "{\n"
            "    [HttpPost]\n"
            "    public IActionResult Create([FromBody] CreateOrderDto order)\n"
            "    {\n"
            "        return Ok();\n"
            "    }\n"
            "}\n",
            encoding="utf-8",
        )
        (src / "Models" / "CreateOrderDto.cs").write_text(
            "public class CreateOrderDto\n"
            "{\n"
            "    public string CustomerEmail { get; set; }\n"
            "    public int Quantity { get; set; }\n"
            "}\n",
            encoding="utf-8",
        )

        code, data = run(tmp_path, str(src), "--generate")
        assert code == 0
        (endpoint,) = data["endpoints"]
        request = endpoint["request"]
        assert request["body"] == {"CustomerEmail": "test@example.com", "Quantity": 1}
        assert request["warnings"] == []

    def test_missing_target(self, tmp_path):
        code, data = run(tmp_path, str(tmp_path / "missing"))
        assert code == 1
        assert data is None

    def test_bad_config(self, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text("unknown_setting: 1\n", encoding="utf-8")
        code, _ = run(tmp_path, STORE, "--config", str(config))
        assert code == 1

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--version"])
        assert exc.value.code == 0
        assert cli.__version__ in capsys.readouterr().out


class TestAnalyzerConfig:
    def test_from_file(self, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text("ignore_dirs: [generated]\ncache_size: 8\n", encoding="utf-8")
        loaded = cli.AnalyzerConfig.from_file(str(config))
        assert loaded.ignore_dirs == {"generated"}
        assert loaded.cache_size == 8

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ENDPOINT_LENS_IGNORE_DIRS", "bin, obj")
        monkeypatch.setenv("ENDPOINT_LENS_CACHE_SIZE", "32")
        monkeypatch.setenv("ENDPOINT_LENS_ENV", "Staging")
        config = cli.AnalyzerConfig.from_env()
        assert config.ignore_dirs == {"bin", "obj"}
        assert config.cache_size == 32
        assert config.environment == "Staging"

    def test_invalid_number(self, monkeypatch):
        monkeypatch.setenv("ENDPOINT_LENS_MAX_FILE_SIZE", "lots")
        with pytest.raises(cli.ConfigError):
            cli.AnalyzerConfig.from_env()

    def test_defaults(self):
        assert "bin" in cli.AnalyzerConfig().ignore_dirs


class TestLogging:
    def test_levels_and_handlers(self):
        logger = cli.setup_logging("debug")
        assert logger.name == "endpoint_lens"
        assert logger.level == logging.DEBUG
        assert [h.level for h in logger.handlers] == [cli.CONSOLE_LOG_LEVEL]

        cli.setup_logging("warning")
        assert len(logger.handlers) == 1

    def test_log_file_is_json_lines(self, tmp_path):
        log_file = tmp_path / "lens.log"
        logger = cli.setup_logging("debug", str(log_file))
        logging.getLogger("endpoint_lens.parsing").debug('Route token "{id}" unmatched')
        for handler in logger.handlers:
            handler.flush()

        (line,) = log_file.read_text(encoding="utf-8").splitlines()
        entry = json.loads(line)
        assert entry["message"] == 'Route token "{id}" unmatched'
        assert (entry["level"], entry["logger"]) == ("DEBUG", "endpoint_lens.parsing")

        cli.setup_logging("warning")
