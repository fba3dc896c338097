#config.py
# Engine constants and JSON config loading
import json
import os

# Volatility substituted when ATR% is unavailable (trading continuity over spacing precision)
DEFAULT_ATR_PERCENT = 1.2
ATR_PERIODS = 10

# Minimum-notional growth-factor search
BISECTION_TOLERANCE = 1e-3
BISECTION_MAX_ITERATIONS = 50

# Slack allowed when checking a new layer against a position's reserved budget
RESERVED_BUDGET_TOLERANCE = 0.01


def load_config(config_path):
    """Load a JSON config. Relative paths are resolved against the package directory."""
    if not os.path.isabs(config_path):
        config_dir = os.path.dirname(__file__)
        config_path = os.path.join(config_dir, config_path)
    with open(config_path, 'r', encoding='utf-8') as file:
        return json.load(file)


def load_strategy_params(config_path):
    """Return the ``strategy_params`` section of a config file (empty dict if absent)."""
    config = load_config(config_path)
    return config.get('strategy_params', {})
