from .auth import GraphAuthManager
from .graph import GraphMailTransport, build_send_mail_payload

__all__ = ["GraphAuthManager", "GraphMailTransport", "build_send_mail_payload"]
