from .directory import Worker, Client, Project, Task
from .timekeeping import TimeEntry, Expense
from .invoicing import Invoice, InvoiceItem, InvoiceNumberCounter, INVOICE_STATUSES

__all__ = [
    'Worker', 'Client', 'Project', 'Task',
    'TimeEntry', 'Expense',
    'Invoice', 'InvoiceItem', 'InvoiceNumberCounter', 'INVOICE_STATUSES',
]
