"""rvcs - recursive, content-addressed version control for local files."""

__version__ = "0.1.0"

# Directory and file constants
RVCS_DIR = ".rvcs"
CONFIG_FILE = "config.json"
OBJECTS_DIR = "objects"
PATHS_DIR = "paths"
CACHE_DIR = "cache"
