"""Destination-platform limits and lookup tables.

Every rule in :mod:`spready.validation.rules` reads its data from here, so the
tables stay in one place and can be asserted against in tests.
"""

from __future__ import annotations

# Hard limits of the destination platform
MAX_PATH_LENGTH: int = 400
MAX_NAME_LENGTH: int = 255
MAX_FILE_SIZE_BYTES: int = 268_435_456_000  # 250 GiB

# File size warning thresholds (strictly greater than)
FILE_SIZE_INFO_BYTES: int = 5_368_709_120  # 5 GiB
FILE_SIZE_WARNING_BYTES: int = 15_728_640_000  # ~15 GB
FILE_SIZE_CRITICAL_BYTES: int = MAX_FILE_SIZE_BYTES

DEFAULT_PATH_WARNING_PERCENT: int = 80

# Characters that expand to %XX when a path travels inside a URL
URL_EXPANDING_CHARACTERS: frozenset[str] = frozenset({" ", "#", "%", "&", "+"})
URL_EXPANDED_WIDTH: int = 3

INVALID_CHARACTERS: tuple[str, ...] = ('"', "*", ":", "<", ">", "?", "/", "\\", "|")

# Compared upper-cased
RESERVED_NAMES: frozenset[str] = frozenset(
    {
        ".LOCK",
        "CON",
        "PRN",
        "AUX",
        "NUL",
        *(f"COM{i}" for i in range(10)),
        *(f"LPT{i}" for i in range(10)),
        "DESKTOP.INI",
        "_VTI_",
    }
)

BLOCKED_PATTERNS: tuple[str, ...] = ("_vti_",)
BLOCKED_FILE_PREFIXES: tuple[str, ...] = ("~$",)
BLOCKED_FOLDER_PREFIXES: tuple[str, ...] = ("~",)

DEFAULT_EXCLUDE_FOLDERS: tuple[str, ...] = (
    "$RECYCLE.BIN",
    "System Volume Information",
    "RECYCLER",
    ".Trash-*",
)

# (category label, extensions, description, remediation); first match wins
BLOCKED_FILE_TYPES: tuple[tuple[str, frozenset[str], str, str], ...] = (
    (
        "Blocked - Executable",
        frozenset({".exe", ".bat", ".cmd", ".com", ".scr", ".pif", ".msi", ".msp", ".application"}),
        "Executable files are often blocked by SharePoint administrators for security reasons.",
        "Remove executable files or verify with the SharePoint administrator if they are needed.",
    ),
    (
        "Blocked - Script",
        frozenset(
            {
                ".vbs", ".vbe", ".js", ".jse", ".wsf", ".wsh", ".ps1",
                ".psm1", ".psd1", ".ps1xml", ".csh", ".ksh",
            }
        ),
        "Script files may be blocked by SharePoint administrators for security reasons.",
        "Script files are often blocked for security. Check with the SharePoint administrator.",
    ),
    (
        "Blocked - System",
        frozenset({".dll", ".sys", ".drv", ".cpl", ".ocx"}),
        "System files (.dll, .sys) are typically blocked in SharePoint Online.",
        "System files typically cannot be uploaded to SharePoint Online.",
    ),
    (
        "Blocked - Potentially Dangerous",
        frozenset(
            {
                ".ade", ".adp", ".app", ".asa", ".asp", ".aspx", ".bas", ".cer", ".chm",
                ".class", ".cnt", ".crt", ".der", ".fxp", ".gadget", ".grp", ".hlp", ".hpj",
                ".hta", ".htc", ".htr", ".htw", ".ida", ".idc", ".idq", ".ins", ".isp",
                ".its", ".jar", ".lnk", ".mad", ".maf", ".mag", ".mam", ".maq", ".mar",
                ".mas", ".mat", ".mau", ".mav", ".maw", ".mcf", ".mda", ".mdb", ".mde",
                ".mdt", ".mdw", ".mdz", ".mht", ".mhtml", ".msc", ".msh", ".msh1",
                ".msh1xml", ".msh2", ".msh2xml", ".mshxml", ".mst", ".ops", ".pcd", ".plg",
                ".prf", ".prg", ".printer", ".pst", ".reg", ".rem", ".scf", ".sct", ".shb",
                ".shs", ".shtm", ".shtml", ".soap", ".stm", ".svc", ".url", ".vb", ".vsix",
                ".ws", ".wsc", ".xamlx",
            }
        ),
        "This file type may be blocked by SharePoint for security reasons.",
        "This file type may be blocked for security reasons. Verify if it is needed.",
    ),
)

EMAIL_ARCHIVE_CRITICAL_BYTES: int = 1_073_741_824  # 1 GiB
LARGE_MEDIA_THRESHOLD_BYTES: int = 5_368_709_120  # 5 GiB
BACKUP_THRESHOLD_BYTES: int = 10_737_418_240  # 10 GiB

# category -> (severity name, extensions, description, minimum size or None)
# Severity is stored as its value so this module stays import-free.
PROBLEMATIC_FILE_TYPES: tuple[tuple[str, str, frozenset[str], str, int | None], ...] = (
    (
        "CAD/BIM",
        "Warning",
        frozenset(
            {
                ".dwg", ".dxf", ".dwl", ".dwl2", ".rvt", ".rfa", ".rte", ".rft", ".dgn",
                ".sldprt", ".sldasm", ".slddrw", ".ipt", ".iam", ".idw", ".ipn",
                ".catpart", ".catproduct", ".catdrawing", ".prt", ".asm", ".drw",
                ".step", ".stp", ".iges", ".igs",
            }
        ),
        "CAD files lack proper file locking in SharePoint. Multiple users can edit "
        "simultaneously without warning, causing data loss.",
        None,
    ),
    (
        "Adobe Creative",
        "Warning",
        frozenset(
            {
                ".psd", ".psb", ".ai", ".indd", ".indt", ".idml", ".prproj", ".prel",
                ".aep", ".aet", ".fla", ".xfl", ".xd", ".idlk",
            }
        ),
        "Adobe files cannot be opened directly from SharePoint. Linked files break "
        "because sync paths are user-specific.",
        None,
    ),
    (
        "Database",
        "Warning",
        frozenset(
            {
                ".mdb", ".accdb", ".accde", ".accdr", ".laccdb", ".qbw", ".qbb", ".qbm",
                ".qbx", ".nsf", ".ntf", ".sqlite", ".sqlite3", ".db", ".db3", ".dbf",
                ".fpt", ".cdx", ".mdf", ".ldf", ".ndf", ".fp7", ".fmp12",
            }
        ),
        "Database files require exclusive access and may corrupt when synced by "
        "multiple users.",
        None,
    ),
    (
        "Email Archive",
        "Warning",
        frozenset({".pst", ".ost"}),
        "PST files sync poorly: they are locked while Outlook runs and the whole file "
        "re-uploads after any change.",
        None,
    ),
    (
        "Large Media",
        "Info",
        frozenset(
            {
                ".mp4", ".mov", ".avi", ".mkv", ".wmv", ".m4v", ".webm", ".flv", ".wav",
                ".aiff", ".aif", ".flac", ".raw", ".cr2", ".cr3", ".nef", ".arw", ".dng",
                ".orf", ".rw2",
            }
        ),
        "Large media files may experience slow sync. Consider Microsoft Stream for video.",
        LARGE_MEDIA_THRESHOLD_BYTES,
    ),
    (
        "Virtual Machine",
        "Warning",
        frozenset(
            {
                ".vmdk", ".vhd", ".vhdx", ".vdi", ".iso", ".img", ".dmg", ".ova", ".ovf",
                ".qcow", ".qcow2",
            }
        ),
        "Virtual machine and disk images are very large and cannot be used directly "
        "from SharePoint.",
        None,
    ),
    (
        "Backup/Archive",
        "Info",
        frozenset(
            {
                ".bak", ".backup", ".old", ".orig", ".zip", ".7z", ".rar", ".tar", ".gz",
                ".tgz", ".cab", ".arc",
            }
        ),
        "Backup and archive files cannot be previewed in SharePoint.",
        BACKUP_THRESHOLD_BYTES,
    ),
    (
        "OneNote",
        "Info",
        frozenset({".one", ".onetoc2"}),
        "OneNote section files should be migrated to OneNote Online notebooks.",
        None,
    ),
)

PROBLEMATIC_REMEDIATION: dict[str, str] = {
    "CAD/BIM": "Consider Autodesk Docs or a dedicated file server for collaborative CAD work.",
    "Adobe Creative": "Users must download to a local drive before opening.",
    "Database": "Migrate to SharePoint Lists, Power Apps or a hosted database.",
    "Email Archive": "Migrate mailbox content to an Exchange Online archive.",
    "Large Media": "Host video in Microsoft Stream or keep media on dedicated storage.",
    "Virtual Machine": "Keep VM and disk images in blob storage.",
    "Backup/Archive": "Decide whether archives need migrating or can be stored separately.",
    "OneNote": "Import notebooks into OneNote Online.",
    "Other": "Verify the file still works after migration.",
    "Security": "Review the file for credentials before moving it to shared storage.",
}

OTHER_PROBLEMATIC_FILES: dict[str, str] = {
    ".lnk": "Windows shortcuts - paths may break after migration",
    ".url": "Internet shortcuts - generally work but verify links",
    ".gdoc": "Google Docs link - just a link file, no actual content",
    ".gsheet": "Google Sheets link - just a link file, no actual content",
    ".gslides": "Google Slides link - just a link file, no actual content",
    ".numbers": "Apple Numbers - no preview or collaboration in SharePoint",
    ".pages": "Apple Pages - no preview or collaboration in SharePoint",
    ".key": "Apple Keynote - no preview or collaboration in SharePoint",
    ".vsdx": "Visio - limited web viewing, requires Visio license",
    ".mpp": "MS Project - no web editing, requires Project license",
    ".pub": "Publisher - no web editing or preview",
}

SECRET_FILE_PATTERNS: tuple[str, ...] = (
    ".env",
    ".env.*",
    "credentials.json",
    "secrets.json",
    "secrets.yaml",
    "secrets.yml",
    "*.pem",
    "*.key",
    "*.pfx",
    "*.p12",
    "id_rsa",
    "id_rsa.*",
    "id_ed25519",
    "id_ed25519.*",
    ".htpasswd",
    "wp-config.php",
    "web.config",
)
SECRET_FILE_MESSAGE: str = (
    "This file may contain secrets or credentials. Review before migrating to shared storage."
)

# Checkpoint bounds
CHECKPOINT_SCHEMA_VERSION: int = 1
CHECKPOINT_MAP_CAP: int = 10_000
DEFAULT_CHECKPOINT_INTERVAL: int = 500
DEFAULT_MAX_ISSUES_IN_MEMORY: int = 100_000
DEFAULT_TOP_N: int = 25
DEFAULT_FOLDER_SAMPLE_SIZE: int = 5
DEFAULT_LOW_MEMORY_BYTES: int = 256 * 1024 * 1024
DEFAULT_MAX_WORKERS: int = 8

STATE_DIRNAME: str = ".spready"
