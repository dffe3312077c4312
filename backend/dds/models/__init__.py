from .organization import Department, User, DistributionType
from .documents import Invoice, AdditionalDocument, invoice_additional_documents
from .distributions import Distribution, DistributionDocument, DistributionHistory, DistributionSequence
from .notifications import Notification

__all__ = [
    'Department', 'User', 'DistributionType',
    'Invoice', 'AdditionalDocument', 'invoice_additional_documents',
    'Distribution', 'DistributionDocument', 'DistributionHistory', 'DistributionSequence',
    'Notification',
]
