"""Storage configuration and YAML loading."""

import logging
import os
from dataclasses import dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import Optional
import yaml

logger = logging.getLogger(__name__)


@dataclass
class StorageConfig:
    """Configuration for the local draft and file stores.
    
    Attributes:
        data_dir: Directory holding both database files
        drafts_db_name: File name of the draft store
        files_db_name: File name of the staged file store
        retention_days: Age after which drafts and staged files are evicted
        autosave_interval_seconds: Default autosave tick interval
        drafts_max_bytes: Optional size limit for the draft store
        files_max_bytes: Optional size limit for the staged file store
        maintenance_interval_seconds: If set, sweep staged files on this interval
    """
    data_dir: Path = Path("~/.draftstage")
    drafts_db_name: str = "drafts.db"
    files_db_name: str = "files.db"
    retention_days: float = 7
    autosave_interval_seconds: float = 30.0
    drafts_max_bytes: Optional[int] = None
    files_max_bytes: Optional[int] = None
    maintenance_interval_seconds: Optional[float] = None
    
    def __post_init__(self):
        self.data_dir = Path(os.path.expandvars(str(self.data_dir))).expanduser()
        if self.retention_days <= 0:
            raise ValueError(f"retention_days must be positive, got {self.retention_days}")
        if self.autosave_interval_seconds <= 0:
            raise ValueError(
                f"autosave_interval_seconds must be positive, got {self.autosave_interval_seconds}"
            )
    
    @property
    def drafts_path(self) -> Path:
        return self.data_dir / self.drafts_db_name
    
    @property
    def files_path(self) -> Path:
        return self.data_dir / self.files_db_name
    
    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)
    
    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "data_dir": str(self.data_dir),
            "drafts_db_name": self.drafts_db_name,
            "files_db_name": self.files_db_name,
            "retention_days": self.retention_days,
            "autosave_interval_seconds": self.autosave_interval_seconds,
            "drafts_max_bytes": self.drafts_max_bytes,
            "files_max_bytes": self.files_max_bytes,
            "maintenance_interval_seconds": self.maintenance_interval_seconds,
        }
    
    @classmethod
    def from_dict(cls, data: dict) -> "StorageConfig":
        """Create from dictionary. Unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown storage config keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})


def load_config_from_yaml(config_path: Path) -> StorageConfig:
    """
    Load storage configuration from a YAML file.
    
    Expected format:
    
    ```yaml
    storage:
      data_dir: ~/.draftstage
      retention_days: 7
      autosave_interval_seconds: 30
      drafts_max_bytes: 5242880
    ```
    
    A missing or unreadable file yields the defaults.
    """
    if not config_path.exists():
        logger.warning(f"Storage config file not found, using defaults: {config_path}")
        return StorageConfig()
    
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error loading storage config: {e}")
        return StorageConfig()
    
    if not data:
        return StorageConfig()
    
    storage = data.get("storage", {}) if isinstance(data, dict) else {}
    config = StorageConfig.from_dict(storage or {})
    logger.info(f"Loaded storage configuration from {config_path}")
    return config


def save_config_to_yaml(config: StorageConfig, config_path: Path) -> None:
    """Save storage configuration to a YAML file."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump({"storage": config.to_dict()}, f, default_flow_style=False, allow_unicode=True)
    
    logger.info(f"Saved storage configuration to {config_path}")


# Example configuration template
EXAMPLE_CONFIG = """# draftstage storage configuration

storage:
  # Where the draft and staged-file databases live
  data_dir: ~/.draftstage
  drafts_db_name: drafts.db
  files_db_name: files.db

  # Drafts and staged files older than this are evicted by sweeps
  retention_days: 7

  # How often bound forms are checked for changes
  autosave_interval_seconds: 30

  # Optional size limits in bytes. A full draft store triggers a sweep
  # and one retry before the save is reported as failed.
  drafts_max_bytes: 5242880
  files_max_bytes: null

  # Sweep staged files periodically (seconds). Leave null to sweep only on demand.
  maintenance_interval_seconds: 3600
"""


def write_example_config(config_path: Path) -> None:
    """Write an example configuration file."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        f.write(EXAMPLE_CONFIG)
    logger.info(f"Wrote example storage configuration to {config_path}")
