import json

import pytest
from pydantic import ValidationError

from artifact_archive.codecs import Algorithm
from artifact_archive.config import CompressionOptions, Config, ConfigModel, load_config


def test_compression_defaults():
    options = CompressionOptions()
    assert options.algorithm == Algorithm.LZMA
    assert options.deduplication
    assert options.delta_compression
    assert not options.lossy_text_normalization
    assert options.validate_after_compression
    assert not options.strict


@pytest.mark.parametrize("level", [0, 10])
def test_level_out_of_range(level):
    with pytest.raises(ValidationError):
        CompressionOptions(compression_level=level)


def test_unknown_options_are_rejected():
    with pytest.raises(ValidationError):
        CompressionOptions(compresion_level=3)


def test_algorithm_from_name():
    assert CompressionOptions(algorithm="brotli").algorithm == Algorithm.BROTLI


def test_load_without_file():
    settings = load_config()
    assert isinstance(settings, ConfigModel)
    assert settings.compression == CompressionOptions()


def test_load_merges_nested_values(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "compression": {"compression_level": 3, "algorithm": "gzip", "max_file_size": 2048},
        "artifact_file_name": "results.json",
        "api": {"base_url": "https://example.test"},
        "output_dir": "/tmp/archives",
    }))

    settings = Config(str(path)).load()
    assert settings.compression.compression_level == 3
    assert settings.compression.algorithm == Algorithm.GZIP
    assert settings.compression.max_file_size == 2048
    assert settings.compression.deduplication
    assert settings.api.base_url == "https://example.test"
    assert settings.output_dir == "/tmp/archives"
    assert settings.artifact_file_name == "results.json"


def test_invalid_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    config = Config(str(path))
    with pytest.raises(ValueError):
        config.load()
    assert config.load_failed


def test_invalid_values(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"compression": {"compression_level": 42}}))
    with pytest.raises(ValueError):
        Config(str(path)).load()


def test_missing_file_falls_back_to_defaults(tmp_path):
    settings = Config(str(tmp_path / "absent.json")).load()
    assert settings.compression == CompressionOptions()


def test_config_property_round_trip():
    config = Config()
    data = config.get_default_config()
    data["compression"]["strict"] = True
    config.config = data
    assert config.settings.compression.strict
    assert config.config["compression"]["strict"] is True
