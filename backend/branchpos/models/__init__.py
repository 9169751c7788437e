from .head_office import Branch, BranchUser, MirrorSyncIssue
from .auth import HeadOfficeUser, SessionToken
from .branch import BranchUserMirror, Zone, DiningTable
from .sales import Sale, SaleLineItem, InvoiceSequence

__all__ = [
    'Branch', 'BranchUser', 'MirrorSyncIssue',
    'HeadOfficeUser', 'SessionToken',
    'BranchUserMirror', 'Zone', 'DiningTable',
    'Sale', 'SaleLineItem', 'InvoiceSequence',
]
