from __future__ import annotations

from typing import Any


class AttolyticsError(Exception):
    """Base error for Attolytics."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        # Structured context for error envelopes; subclasses add their fields.
        return {}


class SchemaLoadError(AttolyticsError):
    """Malformed or internally inconsistent schema description."""

    code = "SCHEMA_LOAD_ERROR"

    MALFORMED = "malformed"
    DUPLICATE_TENANT = "duplicate_tenant"
    DUPLICATE_TABLE = "duplicate_table"
    DUPLICATE_COLUMN = "duplicate_column"
    UNKNOWN_TYPE = "unknown_type"
    UNKNOWN_TABLE_REFERENCE = "unknown_table_reference"

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason

    def details(self) -> dict[str, Any]:
        return {"reason": self.reason}


class AuthError(AttolyticsError):
    """Request is not authorized to write on behalf of the tenant."""

    code = "AUTH_ERROR"

    def __init__(self, message: str, *, tenant_id: str) -> None:
        super().__init__(message)
        self.tenant_id = tenant_id

    def details(self) -> dict[str, Any]:
        return {"tenant_id": self.tenant_id}


class UnknownTenant(AuthError):
    code = "UNKNOWN_TENANT"

    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"Unknown tenant '{tenant_id}'", tenant_id=tenant_id)


class InvalidCredential(AuthError):
    code = "INVALID_CREDENTIAL"

    def __init__(self, tenant_id: str) -> None:
        # Never echo the supplied credential.
        super().__init__(f"Invalid credential for tenant '{tenant_id}'", tenant_id=tenant_id)


class ValidationError(AttolyticsError):
    """A raw event does not match the tenant's schema."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        index: int,
        table: str | None = None,
        column: str | None = None,
    ) -> None:
        super().__init__(message)
        self.index = index
        self.table = table
        self.column = column

    def details(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"event_index": self.index}
        if self.table is not None:
            payload["table"] = self.table
        if self.column is not None:
            payload["column"] = self.column
        return payload


class MissingTableDesignator(ValidationError):
    code = "MISSING_TABLE_DESIGNATOR"

    def __init__(self, field: str, *, index: int) -> None:
        super().__init__(f"Event is missing the string field '{field}'", index=index)
        self.field = field

    def details(self) -> dict[str, Any]:
        payload = super().details()
        payload["field"] = self.field
        return payload


class UnknownTable(ValidationError):
    code = "UNKNOWN_TABLE"

    def __init__(self, table: str, *, index: int) -> None:
        super().__init__(f"Unknown table '{table}'", index=index, table=table)


class TableNotPermitted(ValidationError):
    code = "TABLE_NOT_PERMITTED"

    def __init__(self, table: str, *, tenant_id: str, index: int) -> None:
        super().__init__(
            f"Tenant '{tenant_id}' may not write to table '{table}'",
            index=index,
            table=table,
        )
        self.tenant_id = tenant_id


class UnknownColumn(ValidationError):
    code = "UNKNOWN_COLUMN"

    def __init__(self, column: str, *, table: str, index: int) -> None:
        super().__init__(f"Table '{table}' has no column '{column}'", index=index, table=table, column=column)


class MissingRequiredColumn(ValidationError):
    code = "MISSING_REQUIRED_COLUMN"

    def __init__(self, column: str, *, table: str, index: int) -> None:
        super().__init__(
            f"Required column '{column}' of table '{table}' was omitted",
            index=index,
            table=table,
            column=column,
        )


class TypeMismatch(ValidationError):
    code = "TYPE_MISMATCH"

    def __init__(
        self,
        column: str,
        expected_type: str,
        actual_shape: str,
        *,
        table: str,
        index: int,
    ) -> None:
        super().__init__(
            f"Column '{column}' expects {expected_type}, got {actual_shape}",
            index=index,
            table=table,
            column=column,
        )
        self.expected_type = expected_type
        self.actual_shape = actual_shape

    def details(self) -> dict[str, Any]:
        payload = super().details()
        payload["expected_type"] = self.expected_type
        payload["actual_shape"] = self.actual_shape
        return payload


class ExecutionError(AttolyticsError):
    """Database failure while applying a request's insert plans."""

    code = "EXECUTION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        table: str | None = None,
        row_index: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message)
        self.table = table
        self.row_index = row_index
        self.retryable = retryable

    def details(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"retryable": self.retryable}
        if self.table is not None:
            payload["table"] = self.table
        if self.row_index is not None:
            payload["event_index"] = self.row_index
        return payload


class PoolTimeout(ExecutionError):
    code = "DB_POOL_TIMEOUT"


class StatementFailed(ExecutionError):
    code = "DB_STATEMENT_FAILED"


class CommitFailed(ExecutionError):
    code = "DB_COMMIT_FAILED"


class ConnectionFailed(ExecutionError):
    code = "DB_CONNECTION_FAILED"
