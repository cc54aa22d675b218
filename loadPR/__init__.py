# Make loadPR a package and expose key entrypoints
from .config import ConfigError, Settings, load_settings
from .ingestion import run_ingestion
