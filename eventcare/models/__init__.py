from .user import User
from .job import Job, JobStatus
from .application import Application, ApplicationStatus
from .escrow import EscrowTransaction, EscrowStatus
from .payout import Payout, PayoutMethod, PayoutStatus
from .review import Review
from .report import NurseActivityReport, ActivityIncident, ActivityEquipment, OrganizerFeedback
from .audit import AuditLog
