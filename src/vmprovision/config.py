"""
Manage the configuration of the tool
"""

import os
from pathlib import Path

import yaml

from .constants import AppInfo
from .errors import ConfigurationError

DEFAULT_CONFIG = {
    "VM_DIR": str(Path.home() / "vms"),
    "LOG_FILE_PATH": str(Path.home() / ".cache" / AppInfo.name / "vmprovision.log"),
    "LOG_LEVEL": "INFO",
    # "virt-install" or "libvirt"
    "LAUNCHER": "virt-install",
    "LIBVIRT_URI": "qemu:///system",
    "NETWORK": {"type": "bridge", "source": "br0", "model": "virtio"},
    "GRAPHICS": {"type": "vnc", "listen": "0.0.0.0"},
    # URL or path of a driver ISO attached to installer-ISO guests
    "DRIVER_ISO": None,
    # Seconds allowed per delegated step, None for no limit
    "STEP_TIMEOUT": None,
    # User-defined OS profiles, keyed by menu label
    "profiles": {},
}

VM_DIR_ENV = "VM_DIR"


def get_log_path() -> Path:
    """
    Returns the path to the log file as specified in the configuration,
    ensuring its parent directory exists.
    """
    config = load_config()
    log_file_path_str = config.get("LOG_FILE_PATH", DEFAULT_CONFIG["LOG_FILE_PATH"])
    log_path = Path(log_file_path_str).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return log_path


def get_config_paths():
    """Returns the potential paths for the config file."""
    return [
        Path.home() / ".config" / AppInfo.name / "config.yaml",
        Path("/etc") / AppInfo.name / "config.yaml",
    ]


def get_user_config_path():
    """Returns the path to the user's config file."""
    return get_config_paths()[0]


def load_config():
    """
    Loads the configuration from the first found config file.
    If no config file is found, returns the default configuration.
    Merges the loaded configuration with default values to ensure all keys are present.
    """
    config_path = None
    user_config = {}

    for path in get_config_paths():
        if path.exists():
            config_path = path
            break

    if config_path:
        try:
            with open(config_path, encoding="utf-8") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(user_config, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    # Start with default config and update with user's config
    config = DEFAULT_CONFIG.copy()
    if user_config:
        config.update(user_config)
        # If user sets a value to null in yaml, it becomes None. Revert to default.
        for key, value in config.items():
            if value is None and key in DEFAULT_CONFIG:
                config[key] = DEFAULT_CONFIG[key]

    if not isinstance(config.get("profiles"), dict):
        config["profiles"] = {}

    return config


def save_config(config):
    """Saves the configuration to the user's config file."""
    config_path = get_user_config_path()
    os.makedirs(config_path.parent, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, default_flow_style=False)


def get_vm_dir(config=None, override=None) -> Path:
    """
    Resolve the VM storage directory.

    Precedence: explicit override, then the VM_DIR environment variable,
    then the configuration file, then ~/vms.
    """
    if override:
        return Path(override).expanduser()
    env_value = os.environ.get(VM_DIR_ENV)
    if env_value:
        return Path(env_value).expanduser()
    if config is None:
        config = load_config()
    return Path(config.get("VM_DIR") or DEFAULT_CONFIG["VM_DIR"]).expanduser()


def get_step_timeout(config):
    """Returns the per-step timeout in seconds, or None when unlimited."""
    value = config.get("STEP_TIMEOUT")
    if value is None:
        return None
    try:
        timeout = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"STEP_TIMEOUT must be a number, got {value!r}") from e
    if timeout <= 0:
        raise ConfigurationError(f"STEP_TIMEOUT must be positive, got {value!r}")
    return timeout
