"""Convenience imports so both metadata sets are fully populated."""

from sla_engine.models.sla import BusinessHoursProfile, CategorySLAMapping, SLADefinition
from sla_engine.models.user import Customer, CustomerCompany, User
from sla_engine.models.cmdb_item import CMDBItem
from sla_engine.models.ticket import Ticket
from sla_engine.models.notification import Notification
from sla_engine.models.tenant import Tenant, TenantSetting

__all__ = [
    "BusinessHoursProfile",
    "CategorySLAMapping",
    "CMDBItem",
    "Customer",
    "CustomerCompany",
    "Notification",
    "SLADefinition",
    "Tenant",
    "TenantSetting",
    "Ticket",
    "User",
]
