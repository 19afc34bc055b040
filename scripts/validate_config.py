# --- START OF FILE scripts/validate_config.py ---

"""Validates the adaptation loop configuration file against requirements."""

import sys
import logging
from pathlib import Path
import toml
from typing import Dict, Any, List, Tuple, Union, Callable

from alex_adaptation.models.exceptions import ConfigurationError

# --- Configuration Requirements ---
REQUIRED_CONFIG_KEYS: Dict[str, Dict[str, Union[type, Tuple[type, ...]]]] = {
    "controller": {
        "cycle_interval_s": float,
    },
    "performance_analyzer": {
        "history_size": int,
        "strict_mode": bool,
    },
    "decision_engine": {
        "confidence_threshold": float,
        "risk_tolerance": float,
        "history_size": int,
        "strict_mode": bool,
    },
    "self_optimization": {
        "performance_threshold": float,
        "auto_optimization": bool,
        "optimization_interval_s": float,
        "strict_mode": bool,
    },
    "conflict_detection": {
        "resource_threshold": float,
        "resource_high_cut": float,
        "auto_resolve": bool,
        "max_concurrent_resolutions": int,
        "strict_mode": bool,
    },
}

# Keys checked only when present
OPTIONAL_CONFIG_KEYS: Dict[str, Dict[str, Union[type, Tuple[type, ...]]]] = {
    "controller": {"id_seed": int},
    "decision_engine": {"score_noise": float, "context_history_window": int, "id_seed": int},
    "self_optimization": {
        "trend_confidence_threshold": float, "high_urgency_score": float, "stage_delay_s": float,
        "parameter_history_size": int, "optimization_history_size": int,
    },
    "conflict_detection": {
        "cumulative_change_limit": float, "optimization_window_ms": float,
        "handler_delay_s": float, "history_size": int, "id_seed": int,
    },
}

_unit = lambda x: 0.0 <= x <= 1.0
_positive = lambda x: x > 0

VALUE_CHECKS: Dict[str, Callable[[Any], bool]] = {
    "controller.cycle_interval_s": _positive,
    "performance_analyzer.history_size": _positive,
    "decision_engine.confidence_threshold": _unit,
    "decision_engine.risk_tolerance": _unit,
    "decision_engine.score_noise": _unit,
    "decision_engine.history_size": _positive,
    "decision_engine.context_history_window": _positive,
    "self_optimization.performance_threshold": _unit,
    "self_optimization.trend_confidence_threshold": _unit,
    "self_optimization.high_urgency_score": _unit,
    "self_optimization.optimization_interval_s": _positive,
    "self_optimization.stage_delay_s": lambda x: x >= 0,
    "self_optimization.parameter_history_size": _positive,
    "self_optimization.optimization_history_size": _positive,
    "conflict_detection.resource_threshold": _unit,
    "conflict_detection.resource_high_cut": _unit,
    "conflict_detection.cumulative_change_limit": _positive,
    "conflict_detection.optimization_window_ms": lambda x: x >= 0,
    "conflict_detection.max_concurrent_resolutions": _positive,
    "conflict_detection.handler_delay_s": lambda x: x >= 0,
    "conflict_detection.history_size": _positive,
}


def load_config(config_filepath: Union[str, Path]) -> Dict[str, Any]:
    config_path = Path(config_filepath)
    if not config_path.is_file():
        raise ConfigurationError(f"Configuration file not found or is not a file: {config_path.resolve()}")
    try:
        return toml.load(config_path)
    except toml.TomlDecodeError as e:
        raise ConfigurationError(f"Failed to parse TOML configuration file: {e}") from e


def _check_type(value: Any, expected: Union[type, Tuple[type, ...]]) -> Tuple[bool, bool]:
    """Returns (matches, int_for_float)."""
    if isinstance(value, bool) and expected is not bool:
        return False, False
    if isinstance(expected, tuple):
        return isinstance(value, expected), False
    if expected is float and isinstance(value, int):
        return True, True
    return isinstance(value, expected), False


def _check_section_keys(config: Dict[str, Any], section: str, keys: Dict[str, Any], required: bool,
                        errors: List[str], warnings: List[str]) -> None:
    values = config.get(section, {})
    for key, expected in keys.items():
        if key not in values:
            if required:
                errors.append(f"Missing required key '{key}' in section '[{section}]'")
            continue
        matches, int_for_float = _check_type(values[key], expected)
        if int_for_float:
            warnings.append(f"Key '{key}' in section '[{section}]' is an integer, but float expected. Will be treated as float.")
        if not matches:
            expected_name = " or ".join(t.__name__ for t in expected) if isinstance(expected, tuple) else expected.__name__
            errors.append(f"Invalid type for key '{key}' in section '[{section}]'. Expected {expected_name}, found {type(values[key]).__name__}.")


def _custom_validate_parameters(section: Any, errors: List[str], warnings: List[str]) -> None:
    if not isinstance(section, dict):
        errors.append("Configuration section '[parameters]' is not a valid table.")
        return
    for name, entry in section.items():
        if not isinstance(entry, dict):
            errors.append(f"Parameter entry '[parameters.{name}]' is not a table.")
            continue
        numbers = {k: entry[k] for k in ("default", "min", "max") if k in entry}
        bad = [k for k, v in numbers.items() if isinstance(v, bool) or not isinstance(v, (int, float))]
        if bad:
            errors.append(f"Non-numeric values in [parameters.{name}]: {bad}")
            continue
        if "default" not in numbers:
            warnings.append(f"[parameters.{name}] has no default. Built-in default used if known.")
        if {"min", "max"} <= set(numbers) and numbers["min"] > numbers["max"]:
            errors.append(f"[parameters.{name}] min ({numbers['min']}) > max ({numbers['max']}).")
        elif {"min", "max", "default"} <= set(numbers) and not numbers["min"] <= numbers["default"] <= numbers["max"]:
            errors.append(f"[parameters.{name}] default ({numbers['default']}) outside [{numbers['min']}, {numbers['max']}].")


def collect_config_problems(config: Dict[str, Any]) -> Tuple[List[str], List[str]]:
    """Returns (errors, warnings) for an already parsed configuration."""
    errors: List[str] = []
    warnings: List[str] = []

    for section, keys in REQUIRED_CONFIG_KEYS.items():
        if section not in config:
            errors.append(f"Missing required configuration section: '[{section}]'")
            continue
        if not isinstance(config[section], dict):
            errors.append(f"Configuration section '[{section}]' is not a valid table/dictionary.")
            continue
        _check_section_keys(config, section, keys, True, errors, warnings)
        _check_section_keys(config, section, OPTIONAL_CONFIG_KEYS.get(section, {}), False, errors, warnings)

    # --- Value Validation ---
    for key_path, check in VALUE_CHECKS.items():
        section, key = key_path.split('.', 1)
        values = config.get(section)
        if not isinstance(values, dict) or key not in values:
            continue
        value = values[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue  # reported by the type check
        if not check(value):
            errors.append(f"Invalid value for '{key_path}': {value}.")

    # --- Custom Validations ---
    cd_config = config.get("conflict_detection")
    if isinstance(cd_config, dict):
        threshold, high_cut = cd_config.get("resource_threshold"), cd_config.get("resource_high_cut")
        if isinstance(threshold, (int, float)) and isinstance(high_cut, (int, float)) and high_cut < threshold:
            errors.append(f"conflict_detection.resource_high_cut ({high_cut}) must not be below resource_threshold ({threshold}).")

    thresholds = config.get("performance_analyzer", {}).get("thresholds") if isinstance(config.get("performance_analyzer"), dict) else None
    if isinstance(thresholds, dict):
        for low_key, high_key in (("cpu_low", "cpu_high"), ("cpu_high", "cpu_critical"),
                                  ("memory_low", "memory_high"), ("memory_high", "memory_critical"),
                                  ("response_time_ms", "response_time_critical_ms"),
                                  ("success_rate_critical", "success_rate"), ("quality_critical", "quality")):
            low, high = thresholds.get(low_key), thresholds.get(high_key)
            if isinstance(low, (int, float)) and isinstance(high, (int, float)) and low > high:
                errors.append(f"performance_analyzer.thresholds: {low_key} ({low}) > {high_key} ({high}).")

    if "parameters" in config:
        _custom_validate_parameters(config["parameters"], errors, warnings)

    return errors, warnings


# --- Main Validation Function ---
def validate_config(config_filepath: str = "config.toml") -> bool:
    try:
        config = load_config(config_filepath)
        print(f"ℹ️ Successfully parsed config file: {Path(config_filepath).resolve()}")
    except ConfigurationError as e:
        print(f"❌ ERROR: {e}")
        return False

    errors, warnings = collect_config_problems(config)

    # --- Print Results ---
    if warnings:
        print("\n--- Configuration Warnings ---")
        for warning in warnings: print(f"⚠️ WARNING: {warning}")
    if errors:
        print("\n--- Configuration Errors ---")
        for error in errors: print(f"❌ ERROR: {error}")
        print("\nConfiguration is INVALID.")
    elif warnings: print("\nConfiguration is VALID with warnings.")
    else: print("\n✅ Configuration is VALID.")

    return not errors

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
    script_dir = Path(__file__).resolve().parent
    default_config_path = script_dir.parent / "config.toml"

    config_to_validate_path_str = sys.argv[1] if len(sys.argv) > 1 else str(default_config_path)

    if not Path(config_to_validate_path_str).exists():
        print(f"❌ ERROR: Config file '{config_to_validate_path_str}' not found. Please specify a valid path or place config.toml in the project root.")
        sys.exit(2)

    if validate_config(config_to_validate_path_str):
        sys.exit(0)
    else:
        sys.exit(1)

# --- END OF FILE scripts/validate_config.py ---
