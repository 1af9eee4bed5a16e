"""
Config Loader Tests

Loading of the YAML defaults file and degraded behaviour on bad input.
"""

import os

import yaml

from config.config_loader import ConfigLoader


class TestConfigLoader:
    def setup_method(self):
        ConfigLoader.reset()

    def teardown_method(self):
        ConfigLoader.reset()
        os.environ.pop("CONFIG_PATH", None)

    def test_load_valid_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"watch": {"mode": "together"}}))

        config = ConfigLoader.load_config(str(path))

        assert config["watch"]["mode"] == "together"
        assert ConfigLoader.get_config_status()["config_status"] == "ok"

    def test_missing_file_is_degraded(self, tmp_path):
        config = ConfigLoader.load_config(str(tmp_path / "absent.yaml"))

        assert config == {}
        assert ConfigLoader.get_config_status()["config_status"] == "degraded"

    def test_invalid_yaml_is_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("watch: [unclosed")

        assert ConfigLoader.load_config(str(path)) == {}
        assert ConfigLoader.get_config_status()["config_status"] == "error"

    def test_non_mapping_is_degraded(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")

        assert ConfigLoader.load_config(str(path)) == {}
        assert ConfigLoader.get_config_status()["config_status"] == "degraded"

    def test_env_override_path(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump({"presence": {"text": "the pair"}}))
        os.environ["CONFIG_PATH"] = str(path)

        config = ConfigLoader.load_config()

        assert config["presence"]["text"] == "the pair"

    def test_loads_only_once(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"a": 1}))
        ConfigLoader.load_config(str(path))
        path.write_text(yaml.safe_dump({"a": 2}))

        assert ConfigLoader.load_config(str(path)) == {"a": 1}

    def test_bundled_defaults_parse(self):
        config = ConfigLoader.load_config()

        assert config["watch"]["mode"] in {"alone_together", "together"}
        assert config["watch"]["cooldown_ms"] == 8000
