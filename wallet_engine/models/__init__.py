"""
SQLAlchemy ORM models package.

All models are imported here so that Base.metadata knows every table before
create_all runs, and so other modules can import from wallet_engine.models.
"""

from wallet_engine.models.user import User, UserType  # noqa: F401
from wallet_engine.models.wallet_account import WalletAccount  # noqa: F401
from wallet_engine.models.transaction_lock import TransactionLock, LockStatus  # noqa: F401
from wallet_engine.models.audit_entry import AuditEntry, AuditStatus  # noqa: F401
from wallet_engine.models.spending_limit import SpendingLimitTier, DailyUsage  # noqa: F401
from wallet_engine.models.admin_log import AdminLog  # noqa: F401
