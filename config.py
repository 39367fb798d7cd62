
# Settings for the signing host, taken from the environment (or a .env
# file next to the process). Every value can be overridden per call.

import os
import tempfile
from dotenv import load_dotenv

load_dotenv()

def _flag(name, default):
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes')

def _seconds(name):
    value = os.getenv(name, '').strip()
    return float(value) if value else None

# Folder where the Office SIP tooling (offsign.bat) was extracted
SIGN_TOOL_PATH = os.getenv('OFFICESIGN_SIGN_TOOL_PATH', '')
# Folder holding signtool.exe from the Windows SDK
WINDOWS_KITS_PATH = os.getenv('OFFICESIGN_WINDOWS_KITS_PATH', '')
WRAPPER = os.getenv('OFFICESIGN_WRAPPER', 'offsign.bat')

SCRATCH_DIR = os.getenv('OFFICESIGN_SCRATCH_DIR', tempfile.gettempdir())
DIGEST_ALGORITHM = os.getenv('OFFICESIGN_DIGEST', 'SHA256')

# None waits for offsign.bat forever
TIMEOUT = _seconds('OFFICESIGN_TIMEOUT')

# offsign.bat exits 0 even when verification asks for remediation, so
# its output is searched for this text instead
FAILURE_MARKER = os.getenv('OFFICESIGN_FAILURE_MARKER', 'remediation')

PASSWORD_VARIABLE = os.getenv('OFFICESIGN_PASSWORD_VARIABLE', 'LocalCertPassword')
SECRET_PREFIX = os.getenv('OFFICESIGN_SECRET_PREFIX', '')

CHECK_CERTIFICATE = _flag('OFFICESIGN_CHECK_CERTIFICATE', 'false')

LOG_LEVEL = os.getenv('OFFICESIGN_LOG_LEVEL', 'WARNING').upper()
