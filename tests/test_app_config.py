import json

import pytest

from app_config import DEFAULT_VOXEL_SIZE, RESOLUTION_PRESETS, AppConfig


def test_missing_file_gives_defaults(tmp_path):
    config = AppConfig.load(tmp_path / "nope.json")
    assert config.voxel_size_mm == DEFAULT_VOXEL_SIZE


def test_corrupt_file_gives_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{broken")
    assert AppConfig.load(path).voxel_size_mm == DEFAULT_VOXEL_SIZE


@pytest.mark.parametrize("payload", [{"voxel_size_mm": -3}, {"voxel_size_mm": "big"}, ["x"]])
def test_invalid_values_give_defaults(tmp_path, payload):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps(payload))
    assert AppConfig.load(path).voxel_size_mm == DEFAULT_VOXEL_SIZE


def test_save_then_load(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    config = AppConfig.load(path)
    config.save(10.0)

    assert json.loads(path.read_text()) == {"voxel_size_mm": 10.0}
    assert AppConfig.load(path).voxel_size_mm == 10.0


def test_save_rejects_non_positive(tmp_path):
    config = AppConfig(path=tmp_path / "settings.json")
    with pytest.raises(ValueError):
        config.save(0.0)


def test_presets_include_default():
    assert DEFAULT_VOXEL_SIZE in RESOLUTION_PRESETS.values()
