"""Internal constants shared across the library."""

USER_AGENT = "boardsync/1.0"
REST_PREFIX = "/rest/v1"

# ------------------------------------------------------------------
# Collections (remote table name -> local storage key)
# ------------------------------------------------------------------

BILLBOARDS = "billboards"
CLIENTS = "clients"
CONTRACTS = "contracts"
INVOICES = "invoices"
EXPENSES = "expenses"
USERS = "users"
TASKS = "tasks"
MAINTENANCE_LOGS = "maintenance_logs"
OUTSOURCED_BILLBOARDS = "outsourced_billboards"
PRINTING_JOBS = "printing_jobs"
AUDIT_LOGS = "audit_logs"
COMPANY_PROFILE = "company_profile"

STORAGE_KEYS: dict[str, str] = {
    BILLBOARDS: "db_billboards",
    CLIENTS: "db_clients",
    CONTRACTS: "db_contracts",
    INVOICES: "db_invoices",
    EXPENSES: "db_expenses",
    USERS: "db_users",
    TASKS: "db_tasks",
    MAINTENANCE_LOGS: "db_maintenance_logs",
    OUTSOURCED_BILLBOARDS: "db_outsourced",
    PRINTING_JOBS: "db_printing",
    AUDIT_LOGS: "db_logs",
}

#: Collections reconciled on every periodic pass.
TICK_COLLECTIONS: tuple[str, ...] = (
    BILLBOARDS,
    CLIENTS,
    CONTRACTS,
    INVOICES,
    EXPENSES,
    USERS,
    TASKS,
    MAINTENANCE_LOGS,
)

#: Every collection replaced wholesale by a full pull.
ALL_COLLECTIONS: tuple[str, ...] = (*TICK_COLLECTIONS, OUTSOURCED_BILLBOARDS, PRINTING_JOBS, AUDIT_LOGS)

#: Collections where new rows go to the front of the local list.
PREPEND_COLLECTIONS: frozenset[str] = frozenset({INVOICES, EXPENSES, TASKS, MAINTENANCE_LOGS, AUDIT_LOGS})

#: Collections counted by the integrity report.
INTEGRITY_COLLECTIONS: tuple[str, ...] = (BILLBOARDS, CLIENTS, CONTRACTS, INVOICES, USERS)

# ------------------------------------------------------------------
# Other storage keys
# ------------------------------------------------------------------

KEY_PROFILE = "db_company_profile"
KEY_LOGO = "db_logo"
KEY_LAST_BACKUP = "db_last_backup_meta"
KEY_AUTO_BACKUP = "db_auto_backup_data"
KEY_CLOUD_BACKUP = "db_cloud_backup_meta"
KEY_CLOUD_MIRROR = "db_cloud_mirror_data"
KEY_RESTORE_TIMESTAMP = "db_restore_timestamp"
KEY_DELETED_QUEUE = "db_deleted_queue"
KEY_PENDING_UPSERTS = "db_pending_upserts"

#: Non-critical keys that can be recreated; dropped when storage is full.
EVICTABLE_KEYS: tuple[str, ...] = (STORAGE_KEYS[AUDIT_LOGS], KEY_AUTO_BACKUP, KEY_CLOUD_MIRROR)

PROFILE_ID = "profile_v1"
DEFAULT_LOGO = "https://placehold.co/200x200/0f172a/white?text=Dreambox"
DEFAULT_PROFILE: dict[str, str] = {
    "name": "Dreambox Advertising",
    "address": "",
    "phone": "",
    "email": "",
    "website": "",
}

BACKUP_VERSION = "2.0.0"
APP_NAME = "Dreambox Billboard Suite"

MAX_LOCAL_AUDIT_ENTRIES = 1000
