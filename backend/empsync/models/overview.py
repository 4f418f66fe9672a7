"""
Employment Overview Read View
Materialized view on PostgreSQL, cache table elsewhere
"""

from sqlalchemy import Column, String, Integer, DateTime

from empsync.core.database import Base

OVERVIEW_SELECT = """
SELECT s.employee_id AS employee_id,
       MAX(s.collected_at) AS last_collected_at,
       COUNT(DISTINCT s.endpoint) AS endpoints_collected,
       (SELECT COUNT(*) FROM employes_changes c
         WHERE c.employee_id = s.employee_id AND NOT c.is_duplicate) AS change_count,
       (SELECT MAX(c.detected_at) FROM employes_changes c
         WHERE c.employee_id = s.employee_id AND NOT c.is_duplicate) AS last_change_at
FROM employes_raw_snapshots s
GROUP BY s.employee_id
"""


class EmploymentOverview(Base):
    """Per-employee collection summary (employment_overview)"""

    __tablename__ = "employment_overview"
    __table_args__ = {"info": {"is_view": True}}

    employee_id = Column(String(64), primary_key=True)
    last_collected_at = Column(DateTime(timezone=True), nullable=True)
    endpoints_collected = Column(Integer, nullable=False, default=0)
    change_count = Column(Integer, nullable=False, default=0)
    last_change_at = Column(DateTime(timezone=True), nullable=True)
