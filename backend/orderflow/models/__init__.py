from .catalog import Customer, Product
from .orders import Order, OrderItem
from .financing import InstallmentPlan, Installment, Payment
from .submissions import OrderSubmission

__all__ = [
    'Customer', 'Product',
    'Order', 'OrderItem',
    'InstallmentPlan', 'Installment', 'Payment',
    'OrderSubmission',
]
