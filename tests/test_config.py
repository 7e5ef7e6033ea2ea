"""Tests for library configuration."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from balanghay.config import LibraryConfig, get_config, reset_config


class TestLibraryConfig:
    def test_default_configuration(self, tmp_path):
        config = LibraryConfig(database_path=tmp_path / "library.db")

        assert config.app_name == "balanghay-library"
        assert config.transport == "stdio"
        assert config.default_loan_days == 14
        assert config.qr_box_size == 8
        assert config.qr_border == 4
        assert config.admin_username == "admin"
        assert config.admin_pin == "123456"
        assert config.debug is False

    def test_environment_variable_loading(self, tmp_path):
        env_vars = {
            "BALANGHAY_APP_NAME": "branch-library",
            "BALANGHAY_DATABASE_PATH": str(tmp_path / "branch.db"),
            "BALANGHAY_DEFAULT_LOAN_DAYS": "7",
            "BALANGHAY_DEBUG": "true",
            "BALANGHAY_LOG_LEVEL": "debug",
        }

        with patch.dict(os.environ, env_vars):
            config = LibraryConfig()

        assert config.app_name == "branch-library"
        assert config.database_path == tmp_path / "branch.db"
        assert config.default_loan_days == 7
        assert config.debug is True
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize("name", ["Balanghay", "my library", "lib_1"])
    def test_app_name_validation(self, tmp_path, name):
        with pytest.raises(ValidationError):
            LibraryConfig(app_name=name, database_path=tmp_path / "x.db")

    @pytest.mark.parametrize("days", [0, 366])
    def test_loan_days_bounds(self, tmp_path, days):
        with pytest.raises(ValidationError):
            LibraryConfig(default_loan_days=days, database_path=tmp_path / "x.db")

    def test_only_stdio_transport(self, tmp_path):
        with pytest.raises(ValidationError):
            LibraryConfig(transport="http", database_path=tmp_path / "x.db")

    def test_admin_pin_must_be_digits(self, tmp_path):
        with pytest.raises(ValidationError):
            LibraryConfig(admin_pin="12ab", database_path=tmp_path / "x.db")

    def test_database_directory_is_created(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "library.db"
        config = LibraryConfig(database_path=db_path)

        assert config.database_path == db_path.absolute()
        assert db_path.parent.is_dir()
        assert config.get_database_url() == f"sqlite:///{db_path.absolute()}"

    def test_admin_password_hidden_from_repr(self, tmp_path):
        config = LibraryConfig(admin_password="s3cret", database_path=tmp_path / "x.db")
        assert "s3cret" not in repr(config)

    def test_is_development(self, tmp_path):
        assert LibraryConfig(debug=True, database_path=tmp_path / "x.db").is_development
        assert LibraryConfig(log_level="DEBUG", database_path=tmp_path / "x.db").is_development
        assert not LibraryConfig(database_path=tmp_path / "x.db").is_development

    def test_global_config_singleton(self):
        first = get_config()
        assert get_config() is first

        reset_config()
        assert get_config() is not first

    def test_database_path_from_fixture_env(self):
        # The autouse fixture points the configuration at the test directory
        assert get_config().database_path.name == "config_library.db"
        assert isinstance(get_config().database_path, Path)
