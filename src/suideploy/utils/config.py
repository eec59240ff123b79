# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

'''
=============================================================================
 -------- NETWORK-CRITICAL REMINDER - READ BEFORE EDITING --------
=============================================================================

The values below end up inside the genesis document and the node configs.
Every validator that joins the custom network MUST be deployed with the
same values, otherwise it will reject the genesis blob:

  1) TOKEN ECONOMICS
   - MIST_PER_SUI, PREMINE_MIST, FAUCET_ACCOUNT_MIST, TREASURY_MIST
   - VALIDATOR_STAKE_MIST

  2) GENESIS PARAMETERS
   - EPOCH_DURATION_MS, GENESIS_PARAMETERS, FEATURE_FLAGS

  3) PAYOUT POLICY
   - DELEGATOR_DAILY_RATE_BPS, VALIDATOR_DAILY_RATE_BPS

NOT NETWORK-CRITICAL (may differ between hosts):
   paths, ports exposed through nginx, logging, backups, ledger, timeouts.

=============================================================================
'''

import os
import appdirs


# =============================================================================
# 1. MODE & APPLICATION
# =============================================================================
# ---- RUNTIME PROFILE ----
MODE   = os.environ.get("SUIDEPLOY_MODE", "prod")  # "dev" for verbose local runs, "prod" for servers
IS_DEV = (MODE.lower() == "dev")  # cached boolean to simplify dev/prod toggles

# ---- APP METADATA ----
APP_NAME       = "SuiDeploy"  # display name used for user data directories
APP_AUTHOR     = "SuiDeploy"  # vendor string passed into platform dir helpers
APP_DATA_DIR   = appdirs.user_data_dir(APP_NAME, APP_AUTHOR)  # OS-specific state folder resolved via appdirs
APP_LOG_DIR    = appdirs.user_log_dir(APP_NAME, APP_AUTHOR)  # OS-specific log folder
NETWORK_LABEL  = "Custom Sui Network"  # label shown by the explorer


# =============================================================================
# 2. FILESYSTEM LAYOUT
# =============================================================================
# ---- SUI HOME ----
SUI_HOME          = os.environ.get("SUI_HOME", os.path.join(os.path.expanduser("~"), ".sui"))  # root of all node state
SUI_CLIENT_CONFIG = "sui_config"  # client config folder name inside SUI_HOME
KEYSTORE_NAME     = "sui.keystore"  # keystore file written by `sui client`

# ---- SYSTEM DIRS ----
BIN_DIR          = "/usr/local/bin"  # install target for sui binaries
SYSTEMD_UNIT_DIR = "/etc/systemd/system"  # unit files location
NGINX_AVAILABLE  = "/etc/nginx/sites-available"  # nginx site definitions
NGINX_ENABLED    = "/etc/nginx/sites-enabled"  # nginx enabled-site symlinks
NGINX_LOG_DIR    = "/var/log/nginx"  # per-domain access/error logs
SELF_SIGNED_DIR  = "/etc/ssl/suideploy"  # self-signed cert output folder


# =============================================================================
# 3. SOURCES & BINARIES
# =============================================================================
# ---- UPSTREAM REPOS ----
SUI_REPO_URL      = "https://github.com/MystenLabs/sui.git"  # Sui monorepo (node + explorer apps)
SUI_BRANCH        = "testnet"  # branch checked out for building
EXPLORER_REPO_URL = SUI_REPO_URL  # explorer lives inside the monorepo
SOURCE_DIR_NAME   = "sui"  # checkout folder name under the work dir

# ---- BINARIES ----
SUI_BINARIES  = ("sui", "sui-node", "sui-faucet")  # binaries built and installed
SUI_BIN       = os.path.join(BIN_DIR, "sui")  # CLI
SUI_NODE_BIN  = os.path.join(BIN_DIR, "sui-node")  # validator / fullnode daemon
SUI_FAUCET_BIN = os.path.join(BIN_DIR, "sui-faucet")  # faucet daemon

# ---- PAYOUT SOURCE ----
VALIDATOR_SET_MOVE = "crates/sui-framework/packages/sui-system/sources/validator_set.move"  # relative to repo
REQUIRE_PAYOUT_PATCH = os.environ.get("SUIDEPLOY_REQUIRE_PAYOUT_PATCH", "").strip().lower() in ("1", "true", "yes")  # refuse to build without the reward patch


# =============================================================================
# 4. TOKEN ECONOMICS
# =============================================================================
MIST_PER_SUI          = 1_000_000_000  # 1 SUI = 10^9 MIST
PREMINE_MIST          = 1_000_000 * MIST_PER_SUI  # genesis account premine (1,000,000 SUI)
FAUCET_ACCOUNT_MIST   = 100_000 * MIST_PER_SUI  # faucet funding account (100,000 SUI)
TREASURY_MIST         = 500_000 * MIST_PER_SUI  # treasury account (500,000 SUI)
VALIDATOR_STAKE_MIST  = 100_000 * MIST_PER_SUI  # initial self-stake of the genesis validator


# =============================================================================
# 5. GENESIS PARAMETERS
# =============================================================================
PROTOCOL_VERSION  = 1  # protocol version recorded in the genesis document
EPOCH_DURATION_MS = 86_400_000  # one epoch per day
VALIDATOR_GAS_PRICE       = 1000  # validator gas price in MIST
VALIDATOR_COMMISSION_RATE = 1000  # basis points (10%)

GENESIS_PARAMETERS = {
    "min_validator_count": 1,
    "max_validator_count": 150,
    "min_validator_joining_stake": 30_000 * MIST_PER_SUI,
    "validator_low_stake_threshold": 20_000 * MIST_PER_SUI,
    "validator_very_low_stake_threshold": 15_000 * MIST_PER_SUI,
    "validator_low_stake_grace_period": 7,  # epochs
    "stake_subsidy_start_epoch": 0,
    "stake_subsidy_initial_distribution_amount": 1_000_000_000 * MIST_PER_SUI,
    "stake_subsidy_period_length": 30,  # epochs
    "stake_subsidy_decrease_rate": 1000,  # 10% per period
    "max_gas_budget": 50_000_000,
    "gas_price_for_validator": VALIDATOR_GAS_PRICE,
    "storage_gas_price": 76,
    "storage_rebate_rate": 9900,  # 99%
    "reward_slashing_rate": 10000,  # 100%
    "max_validator_commission_rate": 2000,  # 20%
}

MOVE_PACKAGES = (
    ("MoveStdlib", "crates/sui-framework/packages/move-stdlib"),
    ("SuiFramework", "crates/sui-framework/packages/sui-framework"),
    ("SuiSystem", "crates/sui-framework/packages/sui-system"),
)

FEATURE_FLAGS = (
    "advance_epoch_start_time_in_safe_mode",
    "loaded_child_objects_fixed",
    "missing_type_is_compatibility_error",
    "scoring_decision_with_validity_cutoff",
    "narwhal_versioned_metadata",
    "consensus_order_end_of_epoch_last",
    "disallow_adding_abilities_on_upgrade",
    "disable_invariant_violation_check_in_swap_loc",
    "advance_to_highest_supported_protocol_version",
    "ban_entry_init",
    "package_digest_hash_module",
    "disallow_change_struct_type_params_on_upgrade",
    "no_extraneous_module_bytes",
    "consensus_transaction_ordering",
    "zklogin_auth",
    "consensus_distributed_vote_scoring_strategy",
    "fresh_vm_on_framework_upgrade",
    "prepend_prologue_tx_in_consensus_commit_in_checkpoints",
)


# =============================================================================
# 6. PAYOUT POLICY
# =============================================================================
DELEGATOR_DAILY_RATE_BPS = 100  # 1% per day for delegators
VALIDATOR_DAILY_RATE_BPS = 150  # 1.5% per day for validators
BPS_DENOMINATOR          = 10_000  # basis-point scale


# =============================================================================
# 7. PORTS
# =============================================================================
# ---- VALIDATOR ----
PORT_VALIDATOR_NETWORK   = 8080  # validator network address
PORT_VALIDATOR_PRIMARY   = 8081  # primary network
PORT_VALIDATOR_WORKER    = 8082  # worker network
PORT_VALIDATOR_CONSENSUS = 8083  # consensus
PORT_P2P                 = 8084  # p2p / state sync

# ---- FULLNODE ----
PORT_RPC       = 9000  # JSON-RPC
PORT_WEBSOCKET = 9001  # websocket subscriptions
PORT_METRICS   = 9184  # prometheus metrics
PORT_ADMIN     = 1337  # validator admin interface (localhost only)

# ---- ISOLATED VALIDATOR VARIANT ----
PORT_ISOLATED_RPC       = 9002  # validator json-rpc when co-hosted with a fullnode
PORT_ISOLATED_WEBSOCKET = 9003  # validator websocket when co-hosted
PORT_ISOLATED_METRICS   = 9185  # validator metrics when co-hosted
PORT_ISOLATED_P2P       = 8085  # validator p2p when co-hosted

# ---- SERVICES ----
PORT_FAUCET            = 5003  # faucet HTTP
PORT_EXPLORER          = 3000  # explorer default
PORT_EXPLORER_FALLBACK = 3011  # explorer port when 3000 is taken

FIREWALL_PORTS = (
    PORT_VALIDATOR_NETWORK, PORT_VALIDATOR_PRIMARY, PORT_VALIDATOR_WORKER,
    PORT_VALIDATOR_CONSENSUS, PORT_P2P, PORT_RPC, PORT_WEBSOCKET,
    PORT_METRICS, PORT_FAUCET, PORT_EXPLORER,
)  # opened by the firewall stage


# =============================================================================
# 8. FAUCET
# =============================================================================
FAUCET_AMOUNT_MIST          = 10 * MIST_PER_SUI  # 10 SUI per request
FAUCET_NUM_COINS            = 5  # coins handed out per request
FAUCET_MAX_REQ_PER_SECOND   = 10  # burst limit
FAUCET_MAX_REQ_PER_HOUR     = 100  # hourly limit
FAUCET_REQUEST_BUFFER       = 1000  # queued requests


# =============================================================================
# 9. EXPLORER
# =============================================================================
EXPLORER_APP_CANDIDATES = ("apps/explorer", "apps/wallet", "explorer", "dapps/sui-explorer")  # searched in order
EXPLORER_REPO_DIR       = "sui-explorer"  # clone folder under SUI_HOME/explorer
EXPLORER_STANDALONE_DIR = "standalone"  # scaffold folder under SUI_HOME/explorer
EXPLORER_NEXT_VERSION   = "^13.0.0"  # injected when next is missing
EXPLORER_REACT_VERSION  = "^18.0.0"  # injected when react / react-dom are missing
EXPLORER_MEMORY_MAX     = "2G"  # systemd MemoryMax for the explorer unit
EXPLORER_NOFILE         = 65536  # systemd LimitNOFILE for the explorer unit
NODE_MAJOR              = 18  # NodeSource major release installed on apt hosts
NODE_GLOBAL_TOOLS       = ("yarn", "pnpm", "typescript")  # npm -g installs


# =============================================================================
# 10. NGINX & TLS
# =============================================================================
DEFAULT_DOMAIN   = os.environ.get("SUIDEPLOY_DOMAIN", "sui.example.com")  # nginx server_name
CERTBOT_CRON     = "0 12 * * * /usr/bin/certbot renew --quiet && /usr/bin/systemctl reload nginx"  # renew fallback
SELF_SIGNED_DAYS = 365  # validity of the self-signed fallback certificate


# =============================================================================
# 11. SYSTEM REQUIREMENTS
# =============================================================================
MIN_RAM_GB        = 8  # warn below this much memory
MIN_DISK_GB       = 100  # warn below this much free disk
MEMORY_WARN_PCT   = 80.0  # verify: high memory usage threshold
DISK_WARN_PCT     = 90.0  # verify: high disk usage threshold
SERVICE_SETTLE_S  = 5  # pause between service starts
SUPPORTED_SYSTEMS = ("Linux", "Darwin")  # platform.system() values we deploy on


# =============================================================================
# 12. LEDGER (LMDB)
# =============================================================================
LEDGER_DIR         = os.path.join(APP_DATA_DIR, "ledger")  # LMDB root folder
KV_BACKEND         = "lmdb"  # active key-value backend implementation
LMDB_MAP_SIZE_INIT = 8 * 1024 * 1024  # initial LMDB map size (8 MiB)
LMDB_MAP_SIZE_MAX  = 1024 * 1024 * 1024  # upper LMDB map cap (1 GiB)


# =============================================================================
# 13. RELEASE BOOTSTRAP
# =============================================================================
RELEASE_BOOTSTRAP_ENABLED = True  # try signed prebuilt binaries before cargo
RELEASE_MANIFEST_URL      = os.environ.get("SUIDEPLOY_RELEASE_MANIFEST", "")  # empty disables the bootstrap
RELEASE_PUBKEY_HEX        = os.environ.get("SUIDEPLOY_RELEASE_PUBKEY", "")  # uncompressed secp256k1 key (128 hex)
RELEASE_REQUIRE_SIGNATURE = True  # demand signed release manifests
RELEASE_HTTP_TIMEOUT      = 90  # HTTP timeout for manifest and archive downloads
RELEASE_CHUNK_BYTES       = 2 * 1024 * 1024  # streaming chunk size
RELEASE_MAX_AGE_SECONDS   = 30 * 24 * 3600  # warn on manifests older than this
RELEASE_USER_AGENT        = "SuiDeploy/1.0"  # UA string for release downloads


# =============================================================================
# 14. BACKUPS
# =============================================================================
BACKUP_DIR     = os.path.join(APP_DATA_DIR, "backups")  # default archive destination
BACKUP_MEMBERS = (
    "genesis", "validator", "fullnode", "genesis_account_key.txt",
    "account_info.env", "faucet_config.yaml", "keystore",
)  # paths relative to SUI_HOME
BACKUP_SCRYPT_N = 2 ** 15  # scrypt cost for encrypted archives
BACKUP_SCRYPT_R = 8  # scrypt block size
BACKUP_SCRYPT_P = 1  # scrypt parallelism


# =============================================================================
# 15. RPC
# =============================================================================
RPC_URL         = f"http://127.0.0.1:{PORT_RPC}"  # local fullnode JSON-RPC
WS_URL          = f"ws://127.0.0.1:{PORT_WEBSOCKET}"  # local fullnode websocket
FAUCET_URL      = f"http://127.0.0.1:{PORT_FAUCET}"  # local faucet
RPC_TIMEOUT     = 10  # seconds per JSON-RPC call
HTTP_CHECK_TIMEOUT = 5  # seconds per endpoint check


# =============================================================================
# 16. LOGGING
# =============================================================================
# ---- BASE OUTPUT ----
LOG_PATH             = os.path.join(APP_LOG_DIR, "suideploy.log")  # canonical log file path before format-specific override
LOG_CTX_FIELDS       = ("stage", "service", "host")  # context fields filled with "-" when absent

# ---- MODE PROFILES ----
if IS_DEV:
    # ---- DEV PROFILE ----
    LOG_LEVEL                   = "TRACE"  # very verbose logging for development
    LOG_FORMAT                  = "plain"  # plain text logs ease local debugging
    LOG_TO_CONSOLE              = True  # mirror logs to stderr for dev loops
    LOG_RATE_LIMIT_SECONDS      = 0.0  # disable console throttling in dev
    LOG_FILE_RATE_LIMIT_SECONDS = 0.0  # disable file throttling in dev
    LOG_ROTATE_MAX_BYTES        = 5_000_000  # rollover log files after ~5MB in dev
    LOG_BACKUP_COUNT            = 3  # retain a few rotated dev log files
else:
    # ---- PROD PROFILE ----
    LOG_LEVEL                   = "INFO"  # balanced verbosity for production
    LOG_FORMAT                  = "plain"  # operators read these over ssh
    LOG_TO_CONSOLE              = False  # console belongs to clog() output
    LOG_RATE_LIMIT_SECONDS      = 2.0  # throttle console spam in prod
    LOG_FILE_RATE_LIMIT_SECONDS = 0.0  # keep every deployment line on disk
    LOG_ROTATE_MAX_BYTES        = 10_000_000  # rollover log files after ~10MB in prod
    LOG_BACKUP_COUNT            = 7  # keep more history on production hosts

# ---- LOG PATH NORMALIZATION ----
_LOG_BASE = os.path.join(APP_LOG_DIR, "suideploy")  # base path used to pick extension
if str(LOG_FORMAT).lower().strip() == "json":
    LOG_PATH = _LOG_BASE + ".jsonl"  # JSON lines extension to aid parsing
else:
    LOG_PATH = _LOG_BASE + ".log"  # plain-text log extension
