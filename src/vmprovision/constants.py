"""
Shared constants for the application.
"""

class AppInfo:
    """Define app data"""
    name = "vmprovision"
    namecase = "VM Provision"
    version = "0.3.0"

class ExitCode:
    """Process exit codes, one per failure category."""
    SUCCESS = 0
    VALIDATION = 2
    NOT_FOUND = 3
    CONFIGURATION = 4
    TOOL_FAILURE = 5
    TIMEOUT = 6
    INTERRUPTED = 130

class StepName:
    """Names of the delegated provisioning steps."""
    FETCH = "fetch"
    FETCH_DRIVERS = "fetch-drivers"
    RESIZE = "resize"
    CREATE = "create"
    SEED = "seed"
    LAUNCH = "launch"

class StatusLevel:
    """Status line labels and their ANSI colors."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    SUCCESS = "SUCCESS"
    INPUT = "INPUT"

    COLORS = {
        INFO: "1;34",
        WARN: "1;33",
        ERROR: "1;31",
        SUCCESS: "1;32",
        INPUT: "1;36",
    }

BANNER = r"""
========================================================================
 __     ____  __   ____                 _     _
 \ \   / /  \/  | |  _ \ _ __ _____   _(_)___(_) ___  _ __
  \ \ / /| |\/| | | |_) | '__/ _ \ \ / / / __| |/ _ \| '_ \
   \ V / | |  | | |  __/| | | (_) \ V /| \__ \ | (_) | | | |
    \_/  |_|  |_| |_|   |_|  \___/ \_/ |_|___/_|\___/|_| |_|

========================================================================
"""

WINDOWS_DRIVER_HINT = (
    "During Windows setup: click 'Load Driver' and point to VirtIO drivers from CD."
)
