from .base import Active, Deleted, Lifecycle
from .tenancy import Organization
from .auth import User, SessionToken
from .parties import Customer, Partner, PartnerGroup, PartnerGroupMember, Broker, BrokerDue, PartnerDebt
from .property import Unit, UnitPartner, Contract, Installment
from .treasury import Safe, Voucher, Transfer
from .audit import AuditLog
from .settings import OrganizationSettings

__all__ = [
    'Active', 'Deleted', 'Lifecycle',
    'Organization',
    'User', 'SessionToken',
    'Customer', 'Partner', 'PartnerGroup', 'PartnerGroupMember', 'Broker', 'BrokerDue', 'PartnerDebt',
    'Unit', 'UnitPartner', 'Contract', 'Installment',
    'Safe', 'Voucher', 'Transfer',
    'AuditLog',
    'OrganizationSettings',
]
