# Import models here so Alembic can discover metadata.
from app.models.company import Company  # noqa: F401
from app.models.company_instance import CompanyInstance  # noqa: F401
from app.models.user import User  # noqa: F401
from app.models.subscription import Subscription  # noqa: F401
from app.models.audit_log import AuditLog  # noqa: F401

# Seeded on provisioning
from app.models.crm import AiAgent, CrmLead, CrmStage, GlobalTemplate  # noqa: F401

# Remaining tenant-owned tables (Core Table objects)
from app.models import tenant_tables  # noqa: F401
