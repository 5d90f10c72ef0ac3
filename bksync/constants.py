"""
Constants for bksync.

These are the defaults; most of them can be overridden through the config
system.
"""

# Snapshot envelope
SCHEMA_VERSION = 1
UNKNOWN_BROWSER = "Unknown"

# Browser conventions
BOOKMARKS_BAR_TITLE = "Bookmarks Bar"
OTHER_BOOKMARKS_TITLE = "Other bookmarks"
MOBILE_BOOKMARKS_TITLE = "Mobile bookmarks"
MANAGED_BOOKMARKS_TITLE = "Managed bookmarks"
PROTECTED_PREFIX = "_"

# Merge limits
MAX_TREE_DEPTH = 200

# Local storage keys
SNAPSHOT_KEY = "importedDataList"
ACCOUNT_KEY = "pantryId"

# Remote backup store
DEFAULT_REMOTE_BASE_URL = "https://getpantry.cloud/apiv1/pantry"
DEFAULT_BASKET_NAME = "extensionBackup"
DEFAULT_REQUEST_TIMEOUT = 10

# Chrome stores timestamps as microseconds since 1601-01-01
CHROME_EPOCH_OFFSET_US = 11644473600000000
