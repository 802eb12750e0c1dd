"""
Fixed settings for devdock
"""

APP_NAME = "devdock"

# Request headers for the version manifest so stale CDN copies are skipped
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

# Suffixes used while downloading and replacing the application bundle
PARTIAL_DOWNLOAD_SUFFIX = ".part"
BUNDLE_BACKUP_SUFFIX = ".bak"
APP_BUNDLE_SUFFIX = ".app"

# Extended attribute macOS sets on downloaded files
QUARANTINE_ATTRIBUTE = "com.apple.quarantine"

# Artifact extensions the updater knows how to stage
DISK_IMAGE_EXTENSIONS = (".dmg",)
ARCHIVE_EXTENSIONS = (".zip",)

# Placeholder texts returned by the status probe instead of raising
NO_CONTAINER_FOUND = "No docker container found (tried project id and name variants)"
CONTAINER_NOT_RUNNING = "Container not running or no process info"
CONTAINER_NO_PROCESS_LIST = "Container is running but returned no process list"
NO_CONTAINER_LOGS = "No logs yet or container not running"
NO_PROJECT_PATH = "No project path configured"
LOG_FILE_NOT_FOUND = "Log file not found"
NO_PORT_CONFIGURED = "No port configured"
