"""
Entity classes shared by the test suite.
"""
import datetime
from dataclasses import dataclass
from typing import ClassVar

from entitydb import column, entity


@entity(table='orders')
@dataclass
class Order:
    id: int = None
    customer: str = None
    createdAt: str = None
    total: float = column('order_total', default=None)


@entity
@dataclass
class Customer:
    id: int = None
    name: str = None
    city: str = None


@entity
@dataclass
class AuditEntry:
    kind: ClassVar[str] = 'audit'
    id: int = None
    loggedAt: datetime.datetime = None


@dataclass
class PriorityOrder(Order):
    priorityLevel: int = 0
