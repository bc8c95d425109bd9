"""
Application configuration settings
Do not modify the project-file values once files have been distributed to users.
This file centralises brand, paths, project-file formats, and runtime defaults.
"""

from __future__ import annotations
import os
import platform
from pathlib import Path

# ───────────────────────────────────────────────────────────────────────────────
# Core identity
# ───────────────────────────────────────────────────────────────────────────────
# Application name (used for QSettings, logs and the CLI banner)
APP_NAME = "Spritr"

# Application version in format x.y.z
APP_VERSION = "0.1.0"

# Company or developer name
COMPANY_NAME = "Digi Monsters"

# Reverse-DNS App ID (used in QSettings/diagnostics)
APP_ID = "uk.digimonsters.spritr"

# Organization identifiers (for QSettings, folders)
ORG_NAME = "Digi Monsters"       # human readable
ORG_DIRNAME = "DigiMonsters"     # filesystem safe (no spaces)
ORG_DOMAIN = "digimonsters.uk"

# Code & distribution naming
PACKAGE_NAME = "spritr"          # Python import package
DIST_NAME = "dm-spritr"          # pip/dist name

REPO_URL = "https://github.com/thedigimonsters/dm_spritr"

TAGLINE = "Parts, modes and composites in one file."

# Build metadata (optional, stamped by CI)
BUILD_COMMIT = os.getenv("SPRITR_BUILD_COMMIT", "")[:7]
BUILD_CHANNEL = os.getenv("SPRITR_BUILD_CHANNEL", "dev")  # dev/beta/stable


def version_string() -> str:
    """Human-friendly version string for logs and the CLI."""
    meta = f"+{BUILD_COMMIT}" if BUILD_COMMIT else ""
    chan = f" ({BUILD_CHANNEL})" if BUILD_CHANNEL and BUILD_CHANNEL != "stable" else ""
    return f"{APP_VERSION}{meta}{chan}"


# ───────────────────────────────────────────────────────────────────────────────
# Project file format
# ───────────────────────────────────────────────────────────────────────────────
# Bump only together with a loader that understands the old layout.
PROJECT_FILE_VERSION = 1
PROJECT_EXT = ".spr"

DATA_ENTRY = "data.json"
PREFS_ENTRY = "prefs.json"
IMAGE_EXT = ".png"

# Pivot slots carried by every frame; unused slots are (0, 0)
MAX_PIVOTS = 4

# Preference keys stored as a decimal string holding an unsigned 32-bit value
UINT_PREF_KEYS = frozenset({"background_colour"})


# ───────────────────────────────────────────────────────────────────────────────
# User data locations (settings, logs)
# ───────────────────────────────────────────────────────────────────────────────
def _appdata_base() -> Path:
    system = platform.system()
    if system == "Windows":
        base = os.getenv("APPDATA") or (Path.home() / "AppData" / "Roaming")
    elif system == "Darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
    return Path(base) / ORG_DIRNAME / APP_NAME


APPDATA_DIR = _appdata_base()
LOG_DIR = APPDATA_DIR / "logs"


def ensure_app_dirs() -> None:
    """Create required folders if they don't exist."""
    for p in (APPDATA_DIR, LOG_DIR):
        p.mkdir(parents=True, exist_ok=True)


# ───────────────────────────────────────────────────────────────────────────────
# QSettings bootstrap (call once during startup)
# ───────────────────────────────────────────────────────────────────────────────
def apply_qsettings_org() -> None:
    """
    Apply org/app metadata for QSettings. Call early in startup,
    before constructing your first QSettings instance.
    """
    from PySide6.QtCore import QCoreApplication
    QCoreApplication.setOrganizationName(ORG_NAME)
    QCoreApplication.setOrganizationDomain(ORG_DOMAIN)
    QCoreApplication.setApplicationName(APP_NAME)


# ───────────────────────────────────────────────────────────────────────────────
# CLI hints
# ───────────────────────────────────────────────────────────────────────────────
CLI_NAME = "spritr"
CLI_EXAMPLES = (
    'spritr info "C:/art/goblin.spr"\n'
    'spritr resave "C:/art/goblin.spr" "C:/art/goblin_v2.spr"\n'
)

# ───────────────────────────────────────────────────────────────────────────────
# Defaults (read by settings wrapper; these keys travel in prefs.json)
# ───────────────────────────────────────────────────────────────────────────────
DEFAULTS = {
    "background_colour": 0xFF404040,
    "show_grid": True,
    "grid_size": 16,
    "onion_skin_frames": 1,
}


def banner() -> str:
    return (
        f"{APP_NAME} {version_string()}  •  {APP_ID}\n"
        f"Vendor: {COMPANY_NAME}  •  Repo: {REPO_URL}\n"
        f"Data: {APPDATA_DIR}"
    )
