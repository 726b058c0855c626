import logging
from pathlib import Path

import pytest
import yaml

from layout_engine.cli_utils import read_config
from layout_engine.config_loader import (
    DEFAULT_CONFIG, ConfigLoader, config_pins, load_config, merge_config, validate_config,
)
from layout_engine.logging_utils import setup_logging
from layout_engine.metrics import available_metrics


def test_defaults_without_file():
    config = load_config()
    assert config == DEFAULT_CONFIG
    config['weights']['effort'] = 0.0
    assert DEFAULT_CONFIG['weights']['effort'] == -1.0


def test_file_merges_over_defaults(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text("weights:\n  effort: -2.5\npins: [3, 1, 3]\n", encoding='utf-8')

    loader = ConfigLoader(str(path))
    assert loader.get_weights()['effort'] == -2.5
    assert loader.get_weights()['same_finger_bigram'] == DEFAULT_CONFIG['weights']['same_finger_bigram']
    assert loader.get_pins() == [3, 1]
    assert loader.get_default_language() == 'english'
    assert loader.get_search_config()['cooling_rate'] == 0.999


def test_relative_paths_resolve_against_config_dir(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text("paths:\n  layouts: saved\n  language_data: /data/languages\n",
                    encoding='utf-8')
    loader = ConfigLoader(str(path))
    assert loader.get_path('layouts') == str(tmp_path / 'saved')
    assert loader.get_path('language_data') == str(Path('/data/languages'))
    assert loader.get_path('logs') is None


def test_missing_and_invalid_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigLoader(str(tmp_path / 'missing.yaml')).load_config()

    broken = tmp_path / 'broken.yaml'
    broken.write_text("weights: [unclosed\n", encoding='utf-8')
    with pytest.raises(yaml.YAMLError):
        ConfigLoader(str(broken)).load_config()

    scalar = tmp_path / 'scalar.yaml'
    scalar.write_text("just a string\n", encoding='utf-8')
    with pytest.raises(ValueError):
        ConfigLoader(str(scalar)).load_config()


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text("", encoding='utf-8')
    config = ConfigLoader(str(path)).load_config()
    assert config['weights'] == DEFAULT_CONFIG['weights']


def test_reload_reads_changes(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text("defaults:\n  language: german\n", encoding='utf-8')
    loader = ConfigLoader(str(path))
    assert loader.get_default_language() == 'german'

    path.write_text("defaults:\n  language: french\n", encoding='utf-8')
    assert loader.get_default_language() == 'german'
    loader.reload()
    assert loader.get_default_language() == 'french'


def test_merge_config_is_recursive_and_pure():
    base = {'a': {'x': 1, 'y': 2}, 'b': 1}
    merged = merge_config(base, {'a': {'y': 3}, 'c': [1]})
    assert merged == {'a': {'x': 1, 'y': 3}, 'b': 1, 'c': [1]}
    assert base == {'a': {'x': 1, 'y': 2}, 'b': 1}


def test_validate_config_reports_issues():
    config = merge_config(DEFAULT_CONFIG, {
        'weights': {'effort': 'high', 'speed': 1.0},
        'pins': [0, 31, 'x'],
        'search': {'iterations': 0, 'cooling_rate': 1.5},
        'metrics': {'unmapped_policy': 'ignore'},
    })
    issues = validate_config(config, available_metrics(), n_positions=30)
    text = '\n'.join(issues)
    assert "effort" in text
    assert "speed" in text
    assert "31" in text
    assert "'x'" in text
    assert "iterations" in text
    assert "cooling_rate" in text
    assert "unmapped_policy" in text
    assert validate_config(load_config(), available_metrics(), n_positions=30) == []


def test_config_pins():
    assert config_pins({'pins': None}) == []
    assert config_pins({'pins': [5, '2', 5]}) == [5, 2]


def test_setup_logging_writes_file(tmp_path):
    config = merge_config(DEFAULT_CONFIG, {'paths': {'logs': str(tmp_path / 'logs')}})
    log_file = setup_logging(config, verbose=True)
    try:
        assert log_file is not None and log_file.parent == tmp_path / 'logs'
        logging.getLogger('layout_engine.test').info("hello from the test")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello from the test" in log_file.read_text(encoding='utf-8')
    finally:
        for handler in list(logging.getLogger().handlers):
            logging.getLogger().removeHandler(handler)
            handler.close()


def test_setup_logging_console_only():
    assert setup_logging(load_config()) is None


def test_read_config_warns_about_out_of_range_pins(tmp_path, caplog):
    path = tmp_path / 'config.yaml'
    path.write_text("pins: [0, 30]\n", encoding='utf-8')
    with caplog.at_level(logging.WARNING):
        config = read_config(str(path))
    assert config['pins'] == [0, 30]
    assert "Pin 30 outside key positions 0-29" in caplog.text
