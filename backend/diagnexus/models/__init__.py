from diagnexus.models.user import User, ROLES
from diagnexus.models.report import Report
from diagnexus.models.session_log import SessionLog

__all__ = ["User", "ROLES", "Report", "SessionLog"]
