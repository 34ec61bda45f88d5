from triage.models.tenant import Tenant
from triage.models.lead import Lead, LeadIntent, LeadStatus
from triage.models.maintenance_request import MaintenanceRequest, MaintenanceStatus, Severity
from triage.models.message import Message, MessageDirection
from triage.models.job import Job, JobStatus, JobType
from triage.models.compliance_document import (
    ComplianceDocument, ComplianceStatus, DocumentType, Property,
)
from triage.models.opt_out import OptOut
from triage.models.call import Call, CallOutcome

__all__ = [
    "Tenant", "Lead", "LeadIntent", "LeadStatus",
    "MaintenanceRequest", "MaintenanceStatus", "Severity",
    "Message", "MessageDirection", "Job", "JobStatus", "JobType",
    "ComplianceDocument", "ComplianceStatus", "DocumentType", "Property",
    "OptOut", "Call", "CallOutcome",
]
