"""
Configuration

Settings come from environment variables. A YAML file named by
CURATOR_CONFIG_FILE may provide defaults; environment variables win.
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

logger = logging.getLogger(__name__)

# Dataset size above which the approximate matcher is worth using
DATASET_SIZE_SMALL = 5000
DATASET_SIZE_LARGE = 10000

BATCH_SIZE_SMALL = 250
BATCH_SIZE_MEDIUM = 1000
BATCH_SIZE_LARGE = 2000

DEFAULTS: Dict[str, Any] = {
    'paperless_api_base_url': 'http://paperless-web:8000',
    'paperless_api_token': '',
    'request_timeout_seconds': 30.0,
    'min_request_interval_seconds': 0.0,
    'consolidation_threshold': 0.8,
    'consolidation_batch_size': BATCH_SIZE_MEDIUM,
    'use_advanced_algorithm': False,
    'approximate_min_size': DATASET_SIZE_SMALL,
    'similarity_algorithm': 'dice',
    'merge_workers': 1,
    'enable_performance_monitoring': False,
    'monitoring_interval_seconds': 30.0,
    'llm_provider': 'openai',
    'llm_api_key': None,
    'llm_model': None,
    'activate_tagging': True,
    'activate_correspondents': True,
    'activate_document_type': True,
    'activate_title': True,
    'add_ai_processed_tag': False,
    'ai_processed_tag_name': 'ai-processed',
    'state_dir': '/app/data',
}

# config key -> (env var, parser)
_ENV_KEYS = {
    'paperless_api_base_url': ('PAPERLESS_API_BASE_URL', str),
    'paperless_api_token': ('PAPERLESS_API_TOKEN', str),
    'request_timeout_seconds': ('REQUEST_TIMEOUT_SECONDS', float),
    'min_request_interval_seconds': ('MIN_REQUEST_INTERVAL_SECONDS', float),
    'consolidation_threshold': ('CONSOLIDATION_THRESHOLD', float),
    'consolidation_batch_size': ('CONSOLIDATION_BATCH_SIZE', int),
    'use_advanced_algorithm': ('USE_ADVANCED_ALGORITHM', 'bool'),
    'approximate_min_size': ('APPROXIMATE_MIN_SIZE', int),
    'similarity_algorithm': ('SIMILARITY_ALGORITHM', str),
    'merge_workers': ('MERGE_WORKERS', int),
    'enable_performance_monitoring': ('ENABLE_PERFORMANCE_MONITORING', 'bool'),
    'monitoring_interval_seconds': ('MONITORING_INTERVAL_SECONDS', float),
    'llm_provider': ('LLM_PROVIDER', str),
    'llm_api_key': ('LLM_API_KEY', str),
    'llm_model': ('LLM_MODEL', str),
    'activate_tagging': ('ACTIVATE_TAGGING', 'bool'),
    'activate_correspondents': ('ACTIVATE_CORRESPONDENTS', 'bool'),
    'activate_document_type': ('ACTIVATE_DOCUMENT_TYPE', 'bool'),
    'activate_title': ('ACTIVATE_TITLE', 'bool'),
    'add_ai_processed_tag': ('ADD_AI_PROCESSED_TAG', 'bool'),
    'ai_processed_tag_name': ('AI_PROCESSED_TAG_NAME', str),
    'state_dir': ('STATE_DIR', str),
}


def parse_bool(value: Any, default: bool = False) -> bool:
    """Parse 'true' / '1' / 'yes' style flags."""
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes')


def _load_yaml(path: str) -> Dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        logger.warning(f"Config file {config_path} not found, using environment only")
        return {}

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        logger.warning(f"Config file {config_path} is not a mapping, ignoring it")
        return {}

    unknown = set(data) - set(DEFAULTS)
    if unknown:
        logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
    return {k: v for k, v in data.items() if k in DEFAULTS}


def load_config(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Load configuration.

    Args:
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Configuration dictionary with every key of DEFAULTS present
    """
    env = os.environ if environ is None else environ
    config = dict(DEFAULTS)

    config_file = env.get('CURATOR_CONFIG_FILE')
    if config_file:
        config.update(_load_yaml(config_file))

    for key, (var, parser) in _ENV_KEYS.items():
        raw = env.get(var)
        if raw is None or raw == '':
            continue
        try:
            if parser == 'bool':
                config[key] = parse_bool(raw, DEFAULTS[key])
            else:
                config[key] = parser(raw)
        except ValueError:
            logger.warning(f"Invalid value for {var}: {raw!r}, keeping {config[key]!r}")

    # YAML booleans may arrive as strings
    for key, (_, parser) in _ENV_KEYS.items():
        if parser == 'bool':
            config[key] = parse_bool(config[key], DEFAULTS[key])

    return config


def recommended_settings(entity_count: int) -> Dict[str, Any]:
    """
    Suggest consolidation settings for a dataset of the given size.

    Args:
        entity_count: Number of entities to consolidate

    Returns:
        Dict with threshold, batch_size and use_approximate
    """
    if entity_count < DATASET_SIZE_SMALL:
        return {'threshold': 0.8, 'batch_size': BATCH_SIZE_MEDIUM, 'use_approximate': False}
    if entity_count < DATASET_SIZE_LARGE:
        return {'threshold': 0.75, 'batch_size': BATCH_SIZE_MEDIUM, 'use_approximate': True}
    return {'threshold': 0.75, 'batch_size': BATCH_SIZE_LARGE, 'use_approximate': True}
