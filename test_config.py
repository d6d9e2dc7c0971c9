"""
Tests for configuration loading and the processed-document state.
"""

from curator.config import DEFAULTS, load_config, parse_bool
from curator.state import StateManager


def test_defaults():
    config = load_config({})
    assert config == DEFAULTS
    assert config['consolidation_threshold'] == 0.8
    assert config['consolidation_batch_size'] == 1000
    assert config['similarity_algorithm'] == 'dice'


def test_environment_overrides():
    config = load_config({
        'PAPERLESS_API_TOKEN': 'abc',
        'CONSOLIDATION_THRESHOLD': '0.75',
        'CONSOLIDATION_BATCH_SIZE': '2000',
        'USE_ADVANCED_ALGORITHM': 'yes',
        'ACTIVATE_TITLE': 'false',
    })
    assert config['paperless_api_token'] == 'abc'
    assert config['consolidation_threshold'] == 0.75
    assert config['consolidation_batch_size'] == 2000
    assert config['use_advanced_algorithm'] is True
    assert config['activate_title'] is False


def test_invalid_environment_value_keeps_default():
    config = load_config({'CONSOLIDATION_BATCH_SIZE': 'lots'})
    assert config['consolidation_batch_size'] == 1000


def test_parse_bool():
    assert parse_bool('true')
    assert parse_bool('1')
    assert parse_bool(' YES ')
    assert not parse_bool('no')
    assert parse_bool('', default=True)
    assert parse_bool(None, default=True)


def test_yaml_file_is_overlaid_by_environment(tmp_path):
    config_file = tmp_path / 'curator.yaml'
    config_file.write_text(
        "consolidation_threshold: 0.9\n"
        "merge_workers: 4\n"
        "enable_performance_monitoring: 'true'\n"
        "not_a_setting: 1\n"
    )

    config = load_config({
        'CURATOR_CONFIG_FILE': str(config_file),
        'CONSOLIDATION_THRESHOLD': '0.7',
    })

    assert config['consolidation_threshold'] == 0.7
    assert config['merge_workers'] == 4
    assert config['enable_performance_monitoring'] is True
    assert 'not_a_setting' not in config


def test_missing_yaml_file(tmp_path):
    config = load_config({'CURATOR_CONFIG_FILE': str(tmp_path / 'missing.yaml')})
    assert config == DEFAULTS


def test_state_manager_cursor(tmp_path):
    state = StateManager(state_dir=str(tmp_path))
    assert state.should_process_document('2024-01-01T00:00:00Z', 1)

    state.mark_processed('2024-01-01T00:00:00Z', 1)
    assert not state.should_process_document('2024-01-01T00:00:00Z', 1)
    assert state.should_process_document('2024-01-01T00:00:00Z', 2)
    assert not state.should_process_document('2023-12-31T00:00:00Z', 3)
    assert state.should_process_document('2024-01-02T00:00:00Z', 1)


def test_state_manager_persists(tmp_path):
    StateManager(state_dir=str(tmp_path)).mark_processed('2024-01-01T00:00:00Z', 5)

    reloaded = StateManager(state_dir=str(tmp_path))
    assert not reloaded.should_process_document('2024-01-01T00:00:00Z', 5)
    assert reloaded.get_stats()['total_documents_processed'] == 1

    reloaded.reset()
    assert reloaded.should_process_document('2024-01-01T00:00:00Z', 5)


def test_state_manager_recovers_from_corrupt_file(tmp_path):
    (tmp_path / 'state_tagger.json').write_text('{not json')
    state = StateManager(state_dir=str(tmp_path))
    assert state.get_stats()['total_documents_processed'] == 0
