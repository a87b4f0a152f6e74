# Import all models to ensure they are registered with SQLAlchemy
from .proprietors.proprietors import Proprietor
from .fees.fee_definitions import FeeDefinition
from .payments.payment_ledger import PaymentLedgerEntry
