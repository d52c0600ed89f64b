from .inventory import Terminal, Issuance
from .payments import PaymentRecord
from .settings import Setting

__all__ = [
    'Terminal', 'Issuance',
    'PaymentRecord',
    'Setting',
]
