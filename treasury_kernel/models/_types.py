"""Column helpers shared by treasury models."""

from enum import Enum as PyEnum

from sqlalchemy import Enum


def enum_column_type(enum_cls: type[PyEnum], length: int = 20) -> Enum:
    """Store a str Enum by value in a VARCHAR (no native database enum)."""
    return Enum(
        enum_cls,
        native_enum=False,
        create_constraint=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
