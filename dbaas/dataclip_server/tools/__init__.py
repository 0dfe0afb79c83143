"""
Operational tools for Dataclip.
"""

from .control_tables import CONTROL_TABLES_DDL, control_tables_ddl

__all__ = ["CONTROL_TABLES_DDL", "control_tables_ddl"]
