"""
SQL Validator

Lexical and statement-level checks on generated SQL. This is not a SQL
parser: it catches the breakage typical of truncated or sloppy model output
(unbalanced parentheses and quotes, malformed column lists, missing clauses)
and reports table and column names it can see as evidence.
"""
from __future__ import annotations
from typing import List, Optional
import logging
import re

from legacy_modernizer.validation.result import ValidationResult, clamp_confidence

logger = logging.getLogger(__name__)

# Confidence model
BASE_CONFIDENCE = 0.5
TYPE_BONUS = 0.2
TABLES_BONUS = 0.1
COLUMNS_BONUS = 0.1
ERROR_PENALTY = 0.2
WARNING_PENALTY = 0.05

STATEMENT_PREFIXES = [
    ("CREATE TABLE", "CREATE_TABLE"),
    ("CREATE TEMPORARY TABLE", "CREATE_TABLE"),
    ("CREATE INDEX", "CREATE_INDEX"),
    ("CREATE UNIQUE INDEX", "CREATE_INDEX"),
    ("CREATE VIEW", "CREATE_VIEW"),
    ("CREATE OR REPLACE VIEW", "CREATE_VIEW"),
    ("SELECT", "SELECT"),
    ("WITH", "WITH"),
    ("INSERT", "INSERT"),
    ("UPDATE", "UPDATE"),
    ("DELETE", "DELETE"),
    ("MERGE", "MERGE"),
    ("ALTER", "ALTER"),
    ("DROP", "DROP"),
]

VALID_TYPES = {
    "INT", "INTEGER", "BIGINT", "SMALLINT", "TINYINT", "MEDIUMINT",
    "SERIAL", "BIGSERIAL",
    "VARCHAR", "VARCHAR2", "NVARCHAR", "CHAR", "NCHAR", "CHARACTER",
    "TEXT", "LONGTEXT", "MEDIUMTEXT", "CLOB", "DBCLOB", "GRAPHIC", "VARGRAPHIC",
    "DECIMAL", "NUMERIC", "NUMBER", "DEC", "FLOAT", "DOUBLE", "REAL", "MONEY",
    "DATE", "TIME", "DATETIME", "TIMESTAMP", "TIMESTAMPTZ", "YEAR", "INTERVAL",
    "BOOLEAN", "BOOL", "BIT",
    "BLOB", "LONGBLOB", "MEDIUMBLOB", "TINYBLOB", "BYTEA", "BINARY", "VARBINARY",
    "JSON", "JSONB", "UUID", "ENUM", "SET", "XML",
}

# Table-level definitions inside a CREATE TABLE column list
CONSTRAINT_PREFIXES = ("PRIMARY KEY", "FOREIGN KEY", "CONSTRAINT", "UNIQUE", "CHECK", "INDEX", "KEY")

INJECTION_PATTERNS = [
    (re.compile(r"union\s+select", re.I), "UNION SELECT"),
    (re.compile(r"'\s*or\s*'1'\s*=\s*'1", re.I), "tautology ('1'='1')"),
    (re.compile(r";\s*drop\s+table", re.I), "stacked DROP TABLE"),
    (re.compile(r";\s*delete\s+from", re.I), "stacked DELETE"),
    (re.compile(r"\bexec\s*\(", re.I), "dynamic EXEC"),
    (re.compile(r"script\s*>", re.I), "script tag"),
]

TABLE_PATTERNS = [
    re.compile(r"\bFROM\s+([`\"\[]?[\w.]+[`\"\]]?)", re.I),
    re.compile(r"\bJOIN\s+([`\"\[]?[\w.]+[`\"\]]?)", re.I),
    re.compile(r"\bUPDATE\s+([`\"\[]?[\w.]+[`\"\]]?)", re.I),
    re.compile(r"\bINTO\s+([`\"\[]?[\w.]+[`\"\]]?)", re.I),
    re.compile(r"\bCREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?([`\"\[]?[\w.]+[`\"\]]?)", re.I),
]

SQL_KEYWORDS = {
    "SELECT", "INSERT", "UPDATE", "DELETE", "CREATE", "DROP", "ALTER", "TABLE",
    "INDEX", "VIEW", "FROM", "WHERE", "JOIN", "SET", "VALUES", "INTO", "AS",
    "ON", "LATERAL", "DUAL", "IF",
}

_CREATE_TABLE = re.compile(
    r"CREATE\s+(?:TEMPORARY\s+|TEMP\s+)?TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?([`\"\[]?[\w.]+[`\"\]]?)\s*\(",
    re.I,
)
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$#@]*$")
_QUOTE_CHARS = "`\"[]"
# Whole keywords only: SELECTED_ROWS is not a SELECT
_STATEMENT_PATTERNS = [(re.compile(re.escape(prefix) + r"\b"), kind) for prefix, kind in STATEMENT_PREFIXES]


def _unquote(name: str) -> str:
    return name.strip(_QUOTE_CHARS)


def is_valid_identifier(name: str) -> bool:
    return all(_IDENTIFIER.match(part) for part in name.split("."))


def is_valid_data_type(token: str) -> bool:
    return token.split("(")[0].upper() in VALID_TYPES


def split_top_level(text: str, sep: str = ",") -> List[str]:
    """Split on sep outside parentheses and quotes."""
    parts = []
    current = []
    depth = 0
    quote: Optional[str] = None
    for ch in text:
        if quote:
            current.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == sep and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return [p for p in parts if p]


def strip_comments(sql: str) -> str:
    """
    Remove -- line comments and /* */ block comments outside quotes.

    A block comment becomes a single space; an unclosed one runs to the end.
    """
    out = []
    quote: Optional[str] = None
    i = 0
    n = len(sql)
    while i < n:
        ch = sql[i]
        if quote:
            out.append(ch)
            if ch == quote:
                quote = None
            i += 1
        elif ch in ("'", '"'):
            quote = ch
            out.append(ch)
            i += 1
        elif sql.startswith("--", i):
            newline = sql.find("\n", i)
            i = n if newline == -1 else newline
        elif sql.startswith("/*", i):
            close = sql.find("*/", i + 2)
            out.append(" ")
            i = n if close == -1 else close + 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def split_statements(script: str) -> List[str]:
    """Split a script into statements on semicolons outside quotes and comments."""
    statements = []
    current = []
    quote: Optional[str] = None
    for ch in strip_comments(script):
        current.append(ch)
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == ";":
            stmt = "".join(current).strip()
            if stmt != ";":
                statements.append(stmt)
            current = []
    tail = "".join(current).strip()
    if tail:
        statements.append(tail)
    return statements


def _matching_paren(text: str, open_idx: int) -> Optional[int]:
    depth = 0
    quote: Optional[str] = None
    for i in range(open_idx, len(text)):
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
    return None


class SQLValidator:
    """
    Validates a single SQL statement.

    Checks run in three passes: universal lexical checks, checks specific
    to the statement type, then table/column extraction.
    """

    def determine_statement_type(self, upper_sql: str) -> str:
        for pattern, kind in _STATEMENT_PATTERNS:
            if pattern.match(upper_sql):
                return kind
        return "unknown"

    def _check_balance(self, sql: str, result: ValidationResult) -> None:
        opens = sql.count("(")
        closes = sql.count(")")
        if opens != closes:
            result.errors.append(f"Unbalanced parentheses: {opens} open, {closes} close")
        if sql.count("'") % 2 != 0:
            result.errors.append("Unbalanced single quotes")
        if sql.count('"') % 2 != 0:
            result.errors.append("Unbalanced double quotes")

    def _check_termination(self, sql: str, result: ValidationResult) -> None:
        if not sql.rstrip().endswith(";"):
            result.warnings.append("SQL statement should end with semicolon")

    def _check_injection(self, sql: str, result: ValidationResult) -> None:
        for pattern, label in INJECTION_PATTERNS:
            if pattern.search(sql):
                result.warnings.append(f"Potential SQL injection pattern detected: {label}")

    def _check_deprecated(self, upper_sql: str, result: ValidationResult) -> None:
        if "ISAM" in upper_sql:
            result.warnings.append("ISAM storage engine is deprecated")
        if re.search(r"\)\s*TYPE\s*=", upper_sql):
            result.warnings.append("TYPE= syntax is deprecated, use ENGINE= instead")

    def _check_columns(self, body: str, result: ValidationResult) -> None:
        definitions = split_top_level(body)
        columns = [d for d in definitions if not d.upper().startswith(CONSTRAINT_PREFIXES)]
        if not columns:
            result.errors.append("Table must have at least one column")
            return

        for n, column in enumerate(columns, start=1):
            parts = column.split()
            if len(parts) < 2:
                result.errors.append(f"Column {n}: Invalid column definition '{column}'")
                continue
            name = _unquote(parts[0])
            if not is_valid_identifier(name):
                result.errors.append(f"Column {n}: Invalid column name '{name}'")
            if not is_valid_data_type(parts[1]):
                result.warnings.append(f"Column {n}: Unusual data type '{parts[1].upper()}'")

    def _check_create_table(self, sql: str, result: ValidationResult) -> None:
        m = _CREATE_TABLE.match(sql)
        if not m:
            result.errors.append("Invalid CREATE TABLE syntax")
            return

        table = _unquote(m.group(1))
        if not is_valid_identifier(table):
            result.errors.append(f"Invalid table name: {m.group(1)}")

        open_idx = m.end() - 1
        close_idx = _matching_paren(sql, open_idx)
        if close_idx is None:
            result.errors.append("CREATE TABLE column list is not closed")
        else:
            self._check_columns(sql[open_idx + 1:close_idx], result)

        if "PRIMARY KEY" not in sql.upper():
            result.warnings.append("Table should have a primary key")

    def _check_select(self, upper_sql: str, result: ValidationResult) -> None:
        if "FROM" not in upper_sql and "DUAL" not in upper_sql:
            result.warnings.append("SELECT statement should typically include FROM clause")

    def _check_insert(self, upper_sql: str, result: ValidationResult) -> None:
        if "VALUES" not in upper_sql and "SELECT" not in upper_sql:
            result.errors.append("INSERT statement must include VALUES or SELECT clause")

    def _check_update(self, upper_sql: str, result: ValidationResult) -> None:
        if not re.search(r"\bSET\b", upper_sql):
            result.errors.append("UPDATE statement must include SET clause")
        if not re.search(r"\bWHERE\b", upper_sql):
            result.warnings.append("UPDATE without WHERE clause affects all rows")

    def _check_delete(self, upper_sql: str, result: ValidationResult) -> None:
        if not re.search(r"\bWHERE\b", upper_sql):
            result.warnings.append("DELETE without WHERE clause removes all rows")

    def extract_tables(self, sql: str) -> List[str]:
        tables: List[str] = []
        for pattern in TABLE_PATTERNS:
            for m in pattern.finditer(sql):
                name = _unquote(m.group(1))
                if name.upper() in SQL_KEYWORDS or name in tables:
                    continue
                tables.append(name)
        return tables

    def extract_columns(self, sql: str) -> List[str]:
        m = re.search(r"SELECT\s+(.*?)\s+FROM\b", sql, re.I | re.S)
        if not m or "*" in m.group(1):
            return []
        clause = re.sub(r"^DISTINCT\s+", "", m.group(1).strip(), flags=re.I)
        columns: List[str] = []
        for item in split_top_level(clause):
            token = _unquote(item.split()[0]).split(".")[-1]
            if token and _IDENTIFIER.match(token) and token not in columns:
                columns.append(token)
        return columns

    def _confidence(self, result: ValidationResult) -> float:
        confidence = BASE_CONFIDENCE
        if result.statement_type != "unknown":
            confidence += TYPE_BONUS
        if result.tables:
            confidence += TABLES_BONUS
        if result.columns:
            confidence += COLUMNS_BONUS
        confidence -= ERROR_PENALTY * len(result.errors)
        confidence -= WARNING_PENALTY * len(result.warnings)
        return clamp_confidence(confidence)

    def validate(self, sql) -> ValidationResult:
        result = ValidationResult(kind="sql", statement_type="unknown")

        if not isinstance(sql, str) or not sql.strip():
            result.errors.append("SQL must be a non-empty string")
            result.confidence = clamp_confidence(0)
            return result

        clean = re.sub(r"\s+", " ", strip_comments(sql).strip())
        if not clean:
            result.errors.append("SQL contains only comments")
            result.confidence = clamp_confidence(0)
            return result
        upper = clean.upper()
        result.statement_type = self.determine_statement_type(upper)

        self._check_balance(clean, result)
        self._check_termination(clean, result)
        self._check_injection(clean, result)
        self._check_deprecated(upper, result)

        kind = result.statement_type
        if kind == "CREATE_TABLE":
            self._check_create_table(clean, result)
        elif kind == "SELECT":
            self._check_select(upper, result)
        elif kind == "INSERT":
            self._check_insert(upper, result)
        elif kind == "UPDATE":
            self._check_update(upper, result)
        elif kind == "DELETE":
            self._check_delete(upper, result)

        result.tables = self.extract_tables(clean)
        result.columns = self.extract_columns(clean)
        result.confidence = self._confidence(result)

        logger.debug(
            f"SQL validation ({kind}): {len(result.errors)} errors, "
            f"{len(result.warnings)} warnings, confidence {result.confidence}"
        )
        return result


_default = SQLValidator()


def validate_sql(sql) -> ValidationResult:
    """Validate one SQL statement."""
    return _default.validate(sql)
