"""
USSD Menus Module

- customer.py: customer menu (list buses, book and pay, check, cancel)
- operator.py: PIN-gated operator menu (verify, board, seats left, walk-ins)
- auth.py: operator PIN hashing and failed-attempt limiting
- replies.py: CON/END reply type and screen formatting
- router.py: form-encoded POST endpoints for the USSD gateway
"""

from .router import router
from .customer import CustomerMenu
from .operator import OperatorMenuHandler
from .replies import UssdReply, ReplyKind

__all__ = [
    "router",
    "CustomerMenu",
    "OperatorMenuHandler",
    "UssdReply",
    "ReplyKind",
]
