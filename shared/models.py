"""
Shared data models for SchemaPort.
Connection settings for the introspection service and the JSON schema
document exchanged with the diagram editor.
"""
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from config import CONFIG
from models.schema import Cardinality, CanonicalKind, Dialect, ReferentialAction


# ===== Database Connection Models =====

class DatabaseConfig(BaseModel):
    """Database connection configuration."""
    dialect: Dialect = Dialect.MYSQL
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    user: Optional[str] = None
    password: str = Field(default="", repr=False)
    database: Optional[str] = None
    charset: str = "utf8mb4"
    path: Optional[str] = None  # SQLite database file

    @field_validator("dialect", mode="before")
    @classmethod
    def _parse_dialect(cls, value):
        return Dialect.parse(value)

    @model_validator(mode="after")
    def _check_target(self) -> "DatabaseConfig":
        if self.dialect == Dialect.SQLITE:
            if not self.path:
                raise ValueError("SQLite connections require a database file path")
        elif self.dialect in (Dialect.MYSQL, Dialect.POSTGRES):
            if not self.host or not self.user:
                raise ValueError(f"{self.dialect.value} connections require host and user")
        else:
            raise ValueError(f"Introspection is not supported for {self.dialect.value}")
        return self

    @property
    def resolved_port(self) -> Optional[int]:
        if self.port is not None:
            return self.port
        if self.dialect == Dialect.MYSQL:
            return CONFIG.introspection.mysql_port
        if self.dialect == Dialect.POSTGRES:
            return CONFIG.introspection.postgres_port
        return None


# ===== Schema Document Models =====

class _DocumentModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(populate_by_name=True)


class FieldDoc(_DocumentModel):
    """One column as drawn in the diagram."""
    id: str
    name: str
    type: CanonicalKind
    size: Optional[int] = Field(default=None, ge=1)
    precision: Optional[int] = Field(default=None, ge=1)
    scale: Optional[int] = Field(default=None, ge=0)
    values: List[str] = Field(default_factory=list)
    enum_name: Optional[str] = Field(default=None, alias="enumName")
    unsigned: bool = False
    primary: bool = False
    unique: bool = False
    not_null: bool = Field(default=False, alias="notNull")
    increment: bool = False
    default: Optional[Union[bool, int, str]] = None
    default_is_expression: bool = Field(default=False, alias="defaultIsExpression")
    comment: str = ""


class IndexDoc(_DocumentModel):
    """A table index; ``name`` is null when derived."""
    fields: List[str] = Field(min_length=1)
    unique: bool = False
    name: Optional[str] = None


class TableDoc(_DocumentModel):
    """A table node with its canvas position."""
    id: str
    name: str
    fields: List[FieldDoc] = Field(default_factory=list)
    indices: List[IndexDoc] = Field(default_factory=list)
    comment: str = ""
    color: str = "#175e7a"
    x: float = 0.0
    y: float = 0.0


class ReferenceDoc(_DocumentModel):
    """A relationship line between two fields."""
    id: str
    name: Optional[str] = None
    start_table_id: str = Field(alias="startTableId")
    start_field_id: str = Field(alias="startFieldId")
    end_table_id: str = Field(alias="endTableId")
    end_field_id: str = Field(alias="endFieldId")
    cardinality: Cardinality = Cardinality.MANY_TO_ONE
    update_constraint: ReferentialAction = Field(
        default=ReferentialAction.RESTRICT, alias="updateConstraint"
    )
    delete_constraint: ReferentialAction = Field(
        default=ReferentialAction.RESTRICT, alias="deleteConstraint"
    )

    @field_validator("update_constraint", "delete_constraint", mode="before")
    @classmethod
    def _parse_action(cls, value):
        return ReferentialAction.parse(value)


class EnumDoc(_DocumentModel):
    """A named enumeration."""
    name: str
    values: List[str] = Field(default_factory=list)


class SchemaDocument(_DocumentModel):
    """The `{tables, references, enums}` document consumed by the editor."""
    title: str = ""
    database: Dialect = Dialect.DBML
    tables: List[TableDoc] = Field(default_factory=list)
    references: List[ReferenceDoc] = Field(default_factory=list)
    enums: List[EnumDoc] = Field(default_factory=list)

    @field_validator("database", mode="before")
    @classmethod
    def _parse_database(cls, value):
        return Dialect.parse(value)
