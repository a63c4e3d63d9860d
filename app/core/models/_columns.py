from enum import Enum
from typing import Type

from sqlalchemy import Column
from sqlalchemy import Enum as SAEnum


def enum_column(enum_cls: Type[Enum], **kwargs) -> Column:
    """String-backed enum column storing member values ("pending", not "PENDING")."""
    return Column(
        SAEnum(
            enum_cls,
            native_enum=False,
            length=20,
            validate_strings=True,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        **kwargs,
    )
