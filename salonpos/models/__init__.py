from salonpos.models.tenant import Tenant
from salonpos.models.account import Account
from salonpos.models.staff_member import StaffMember
from salonpos.models.synced_catalog_item import SyncedCatalogItem
from salonpos.models.synced_customer import SyncedCustomer
from salonpos.models.sync_run import SyncRun
from salonpos.models.pin_attempt import PinAttempt
from salonpos.models.audit_log import AuditLog
from salonpos.models.pending_grant import PendingPosGrant
