"""
Domain value enumerations for plot-transfer cases.

Pure ``str, Enum`` codes shared by models, selectors, guards and services.
Stored in the database by value.
"""

from enum import Enum


class Section(str, Enum):
    """Organizational unit that owns a Clearance or Review on a case."""

    BCA = "BCA"
    HOUSING = "HOUSING"
    ACCOUNTS = "ACCOUNTS"
    WATER = "WATER"
    OWO = "OWO"
    APPROVER = "APPROVER"


class ClearanceStatus(str, Enum):
    PENDING = "PENDING"
    CLEAR = "CLEAR"
    OBJECTION = "OBJECTION"


class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Role(str, Enum):
    """Actor role codes carried on a GuardContext."""

    ADMIN = "ADMIN"
    LRS = "LRS"
    OWO = "OWO"
    BCA = "BCA"
    HOUSING = "HOUSING"
    ACCOUNTS = "ACCOUNTS"
    WATER = "WATER"
    APPROVER = "APPROVER"
    SYSTEM = "SYSTEM"
