"""
Database Enumerations
=====================

Enumerations shared by the ORM tables and the API schemas.

Version: 0.1.0
"""

from enum import Enum

from sqlalchemy import Enum as SQLEnum


class Severity(str, Enum):
    """Rule criticality tier."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class CheckStatus(str, Enum):
    """Outcome of a rule evaluation or of a whole compliance check."""

    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


class ProductType(str, Enum):
    """Cannabis product categories a rule can apply to."""

    FLOWER = "flower"
    EDIBLES = "edibles"
    CONCENTRATES = "concentrates"
    TOPICALS = "topicals"
    TINCTURES = "tinctures"
    PRE_ROLLS = "pre_rolls"
    OTHER = "other"


class PanelType(str, Enum):
    """Which face of the package a photo shows."""

    FRONT = "front"
    BACK = "back"
    LEFT_SIDE = "left_side"
    RIGHT_SIDE = "right_side"
    EXIT_BAG = "exit_bag"
    OTHER = "other"


class RuleSourceType(str, Enum):
    """Whether a rule derives from regulation or internal policy."""

    REGULATORY = "regulatory"
    INTERNAL = "internal"


class ChangeType(str, Enum):
    """Kind of rule change an AI suggestion proposes."""

    NEW = "new"
    UPDATE = "update"
    DEPRECATE = "deprecate"


class SuggestionStatus(str, Enum):
    """Review state of a suggestion. Approved and rejected are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AuditAction(str, Enum):
    """Mutation recorded in the rule audit log."""

    CREATED = "created"
    UPDATED = "updated"
    DEACTIVATED = "deactivated"
    REACTIVATED = "reactivated"
    DELETED = "deleted"


ALL_PRODUCT_TYPES = [p.value for p in ProductType]


def enum_column_type(enum_cls: type[Enum]) -> SQLEnum:
    """Store enum values (not names) as portable VARCHAR with a CHECK constraint."""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        create_constraint=True,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        name=f"{enum_cls.__name__.lower()}_enum",
    )
