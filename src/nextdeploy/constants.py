"""Fixed locations, modes and limits used by nextdeploy."""

DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_SECRETS_FILE = "secrets.json"

LOG_DIR = "/var/log"
LOG_FILE = f"{LOG_DIR}/nextjs-deploy.log"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_ROTATED_SUFFIX = ".old"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

BACKUP_DIR = "/var/www/backups"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

DIR_MODE = 0o755
FILE_MODE = 0o644

REQUIRED_TOOLS = ("git", "curl")

NODESOURCE_DEB_SETUP_URL = "https://deb.nodesource.com/setup_{major}.x"
NODESOURCE_RPM_SETUP_URL = "https://rpm.nodesource.com/setup_{major}.x"

PM2_STARTUP_PLATFORM = "systemd"
LOCKFILE_NAME = "package-lock.json"
