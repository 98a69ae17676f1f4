from .doctor import run_doctor_checks
from .sender import MailSender, backoff_delay
from .setup import SetupWizard

__all__ = ["MailSender", "SetupWizard", "backoff_delay", "run_doctor_checks"]
