"""
Referenda Tester Constants

This module consolidates the global constants and environment configuration
used throughout the codebase. Constants are organized by category for easy
reference and maintenance.
"""
import ast
import re
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'False',
    'LOG_FILE':                        'logs/reftester.log',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# ==================================================================================
# CHAIN IDENTITY
# ==================================================================================
# Runtime spec names that identify a relay chain. Anything else is a parachain.
RELAY_SPEC_NAMES = ('polkadot', 'kusama', 'paseo', 'westend', 'rococo')

# Relay chains the fork engine can wire parachains to by network key.
WIRED_RELAY_KEYS = ('polkadot', 'kusama')
FALLBACK_RELAY_KEY = 'relay'


# ==================================================================================
# GOVERNANCE PALLETS
# ==================================================================================
MAIN_REFERENDA_PALLET = 'Referenda'
FELLOWSHIP_REFERENDA_PALLET = 'FellowshipReferenda'
FELLOWSHIP_COLLECTIVE_PALLET = 'FellowshipCollective'

NUDGE_METHOD_NAMES = ('nudge_referendum', 'nudgeReferendum')
NUDGE_INDEX_ARG_NAMES = ('index', 'ref_index', 'refIndex')

# Fellowship tallies are rank-weighted, so fixed numbers comfortably pass any track.
FELLOWSHIP_BARE_AYES = 100
FELLOWSHIP_AYES = 1000
FELLOWSHIP_NAYS = 0
FELLOWSHIP_MAX_RANK = 7

TRACK_NAMES = {
    0: 'root',
    1: 'whitelisted_caller',
    10: 'staking_admin',
    11: 'treasurer',
    12: 'lease_admin',
    13: 'fellowship_admin',
    14: 'general_admin',
    15: 'auction_admin',
    20: 'referendum_canceller',
    21: 'referendum_killer',
    30: 'small_tipper',
    31: 'big_tipper',
    32: 'small_spender',
    33: 'medium_spender',
    34: 'big_spender',
}

# Custom origins exposed by the `Origins` pallet of the OpenGov runtimes.
CUSTOM_ORIGINS = (
    'StakingAdmin', 'Treasurer', 'FellowshipAdmin', 'GeneralAdmin', 'AuctionAdmin',
    'LeaseAdmin', 'ReferendumCanceller', 'ReferendumKiller', 'SmallTipper', 'BigTipper',
    'SmallSpender', 'MediumSpender', 'BigSpender', 'WhitelistedCaller', 'WishForChange',
    'Fellows', 'Fellowship1Dan', 'Fellowship2Dan', 'Fellowship3Dan', 'Fellowship4Dan',
    'Fellowship5Dan', 'Fellowship6Dan', 'Fellowship7Dan', 'Fellowship8Dan', 'Fellowship9Dan',
)


# ==================================================================================
# DEV ACCOUNT
# ==================================================================================
DEV_ACCOUNT_URI = '//Alice'
DEV_ACCOUNT_ADDRESS = '5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY'
DEV_ACCOUNT_FREE_BALANCE = 10_000_000_000_000_000_000


# ==================================================================================
# WIRE LIMITS
# ==================================================================================
# Largest integer the fork engine's JSON parser keeps exact.
JS_MAX_SAFE_INTEGER = 2 ** 53 - 1


# ==================================================================================
# VALIDATION PATTERNS
# ==================================================================================
VALID_CALL_HEX_PATTERN = re.compile(r'^0x[0-9a-fA-F]*$')


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = LOGGER_DEFAULTS
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Only known literals reach ast.literal_eval.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
